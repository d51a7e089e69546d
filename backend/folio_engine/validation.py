"""Structural checks for movements and emitted snapshots."""

from __future__ import annotations

from typing import Optional

from .errors import InvalidMovementError
from .models import TICKER_KINDS, BrokerFinancialSnapshot, Movement, MovementKind


def _fail(movement: Movement, message: str) -> InvalidMovementError:
    return InvalidMovementError(
        message,
        account_id=movement.account_id,
        sequence=movement.sequence,
        kind=movement.kind.value if isinstance(movement.kind, MovementKind) else str(movement.kind),
    )


def validate_movement(movement: Movement, previous: Optional[Movement] = None) -> None:
    """Raise ``InvalidMovementError`` when a movement cannot be applied after ``previous``."""

    if not isinstance(movement.kind, MovementKind):
        raise _fail(movement, f"Unknown movement kind {movement.kind!r}")
    if previous is not None:
        if movement.account_id != previous.account_id:
            raise _fail(movement, f"Movement belongs to account {movement.account_id}, expected {previous.account_id}")
        if movement.sequence <= previous.sequence:
            raise _fail(movement, f"Sequence {movement.sequence} is not after {previous.sequence}")
        if movement.timestamp < previous.timestamp:
            raise _fail(movement, "Movement timestamp goes back in time")
    for name in ("quantity", "commission", "fee"):
        if getattr(movement, name) < 0:
            raise _fail(movement, f"{name} must be >= 0")
    if movement.kind in TICKER_KINDS and not movement.ticker:
        raise _fail(movement, "Ticker is required")

    if movement.kind is MovementKind.TRADE:
        if movement.side is None:
            raise _fail(movement, "Trade side is required")
        if movement.quantity <= 0:
            raise _fail(movement, "Trade quantity must be > 0")
        if movement.price < 0:
            raise _fail(movement, "Trade price must be >= 0")
    elif movement.kind is MovementKind.OPTION_TRADE:
        if movement.option_action is None:
            raise _fail(movement, "Option action is required")
        if movement.option_type is None or movement.strike is None or movement.expiration is None:
            raise _fail(movement, "Option contract (type, strike, expiration) is required")
        if movement.quantity <= 0:
            raise _fail(movement, "Option quantity must be > 0")
        if movement.multiplier is not None and movement.multiplier <= 0:
            raise _fail(movement, "Option multiplier must be > 0")
    elif movement.kind is MovementKind.CONVERSION:
        if not movement.from_currency:
            raise _fail(movement, "Conversion source currency is required")
        if movement.from_currency == movement.currency:
            raise _fail(movement, "Conversion must change currency")
    elif movement.kind in (MovementKind.DEPOSIT, MovementKind.WITHDRAWAL):
        if movement.amount < 0:
            raise _fail(movement, "Cash transfer amount must be >= 0")


def validate_snapshot(snapshot: BrokerFinancialSnapshot) -> list[str]:
    """Return the invariant violations found on an emitted snapshot."""

    problems: list[str] = []
    expected = (
        snapshot.deposited
        - snapshot.withdrawn
        + snapshot.dividends_received
        + snapshot.options_income
        + snapshot.other_income
        - snapshot.commissions
        - snapshot.fees
    )
    if snapshot.net_cash_flow != expected:
        problems.append(f"net_cash_flow {snapshot.net_cash_flow} != {expected}")
    if snapshot.movement_counter < 0:
        problems.append("movement_counter is negative")
    if snapshot.commissions < 0 or snapshot.fees < 0:
        problems.append("commissions and fees must be non-negative")
    if snapshot.invested < 0:
        problems.append("invested is negative")
    return problems


__all__ = ["validate_movement", "validate_snapshot"]
