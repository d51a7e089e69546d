"""Cumulative cash accumulators for one (account, currency) stream.

``FinancialTotals`` is an immutable value; ``apply_movement`` folds a movement
into it and returns the next value.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

from .errors import InvalidMovementError
from .ledger import PositionDelta
from .models import Movement, MovementKind, TradeSide
from .money import ZERO


@dataclass(frozen=True)
class FinancialTotals:
    movement_counter: int = 0
    realized_gains: Decimal = ZERO
    commissions: Decimal = ZERO
    fees: Decimal = ZERO
    deposited: Decimal = ZERO
    withdrawn: Decimal = ZERO
    dividends_received: Decimal = ZERO
    options_income: Decimal = ZERO
    other_income: Decimal = ZERO
    cash: Decimal = ZERO

    @property
    def net_cash_flow(self) -> Decimal:
        return (
            self.deposited
            - self.withdrawn
            + self.dividends_received
            + self.options_income
            + self.other_income
            - self.commissions
            - self.fees
        )


def apply_movement(
    totals: FinancialTotals,
    movement: Movement,
    delta: Optional[PositionDelta] = None,
    *,
    currency: Optional[str] = None,
) -> FinancialTotals:
    """Return ``totals`` with ``movement`` applied.

    ``currency`` names the stream being updated; it only matters for
    conversions, which debit the source currency stream and credit the
    target one.
    """

    delta = delta or PositionDelta()
    kind = movement.kind
    counter = totals.movement_counter + 1
    charges = movement.commission + movement.fee

    if kind is MovementKind.CONVERSION and currency is not None and currency == movement.from_currency:
        return replace(totals, movement_counter=counter, cash=totals.cash - movement.from_amount)

    base = replace(
        totals,
        movement_counter=counter,
        commissions=totals.commissions + movement.commission,
        fees=totals.fees + movement.fee,
        realized_gains=totals.realized_gains + delta.realized,
    )

    if kind is MovementKind.DEPOSIT:
        return replace(
            base,
            deposited=totals.deposited + movement.amount,
            cash=totals.cash + movement.amount - charges,
        )
    if kind is MovementKind.WITHDRAWAL:
        return replace(
            base,
            withdrawn=totals.withdrawn + movement.amount,
            cash=totals.cash - movement.amount - charges,
        )
    if kind is MovementKind.DIVIDEND:
        return replace(
            base,
            dividends_received=totals.dividends_received + movement.amount,
            cash=totals.cash + movement.amount - charges,
        )
    if kind is MovementKind.DIVIDEND_TAX:
        return replace(
            base,
            dividends_received=totals.dividends_received - movement.amount,
            cash=totals.cash - movement.amount - charges,
        )
    if kind is MovementKind.OPTION_TRADE:
        return replace(
            base,
            options_income=totals.options_income + movement.amount,
            cash=totals.cash + movement.amount - charges,
        )
    if kind is MovementKind.TRADE:
        gross = movement.quantity * movement.price
        flow = -gross if movement.side is TradeSide.BUY else gross
        return replace(base, cash=totals.cash + flow - charges)
    if kind is MovementKind.CONVERSION:
        return replace(base, cash=totals.cash + movement.amount - charges)
    if kind is MovementKind.FEE:
        return replace(
            base,
            fees=base.fees + movement.amount,
            cash=totals.cash - movement.amount - charges,
        )
    if kind is MovementKind.INTEREST:
        return replace(
            base,
            other_income=totals.other_income + movement.amount,
            cash=totals.cash + movement.amount - charges,
        )
    if kind is MovementKind.INTEREST_PAID:
        return replace(
            base,
            other_income=totals.other_income - movement.amount,
            cash=totals.cash - movement.amount - charges,
        )

    raise InvalidMovementError(
        f"Unhandled movement kind {kind!r}",
        account_id=movement.account_id,
        sequence=movement.sequence,
        kind=str(kind),
    )


__all__ = ["FinancialTotals", "apply_movement"]
