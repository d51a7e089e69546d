"""Consolidation of ticker activity into ``AutoImportOperation`` records.

One operation spans the time a ticker has open exposure in an account.
Strategies opened while an operation is still open are merged into it; once
every leg is flat the operation closes and the next opening movement starts a
fresh record keyed by its own sequence number.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Hashable, List, Optional

from .config import DEFAULT_OPTION_MULTIPLIER
from .errors import UnbalancedOperationError
from .ledger import PositionDelta
from .models import AutoImportOperation, Movement, MovementKind, OptionAction, TradeSide
from .money import ZERO, percentage

logger = logging.getLogger(__name__)

EQUITY_LEG = "EQUITY"


@dataclass
class OperationState:
    ticker: str
    currency: str
    opening_sequence: int
    open_date: datetime
    close_date: Optional[datetime] = None
    is_open: bool = True
    realized: Decimal = ZERO
    commissions: Decimal = ZERO
    fees: Decimal = ZERO
    premium: Decimal = ZERO
    dividends: Decimal = ZERO
    dividend_taxes: Decimal = ZERO
    capital_deployed: Decimal = ZERO
    is_consistent: bool = True
    # Signed exposure per leg: shares for equity, contracts for options (short < 0).
    legs: Dict[Hashable, Decimal] = field(default_factory=dict)
    day: Optional[date] = None
    realized_at_day_start: Decimal = ZERO
    capital_at_day_start: Decimal = ZERO

    def start_day(self, day: date) -> None:
        if self.day != day:
            self.realized_at_day_start = self.realized
            self.capital_at_day_start = self.capital_deployed
            self.day = day

    @property
    def is_flat(self) -> bool:
        return all(value == 0 for value in self.legs.values())


class OperationConsolidator:
    def __init__(
        self,
        account_id: str,
        *,
        default_multiplier: Decimal = DEFAULT_OPTION_MULTIPLIER,
        percentage_places: int = 4,
    ):
        self.account_id = account_id
        self.default_multiplier = default_multiplier
        self.percentage_places = percentage_places
        self._open: Dict[str, OperationState] = {}
        self._latest: Dict[str, OperationState] = {}

    def apply(
        self,
        movement: Movement,
        delta: Optional[PositionDelta] = None,
        *,
        day: Optional[date] = None,
    ) -> Optional[AutoImportOperation]:
        """Fold a movement into its ticker's operation and return the updated record.

        ``day`` is the processing day the "today" deltas are measured for.
        Raises ``UnbalancedOperationError`` after recording the movement's
        cash effect when a closing leg has no matching exposure.
        """

        if not movement.ticker:
            return None
        delta = delta or PositionDelta()
        day = day or movement.day

        if movement.kind in (MovementKind.DIVIDEND, MovementKind.DIVIDEND_TAX):
            state = self._open.get(movement.ticker) or self._latest.get(movement.ticker)
            if state is None:
                logger.debug("Dividend on %s has no operation to attach to", movement.ticker)
                return None
            state.start_day(day)
            self._apply_cash(state, movement, delta)
            return self.record(state)

        state = self._open.get(movement.ticker)
        if state is None:
            state = OperationState(
                ticker=movement.ticker,
                currency=movement.currency,
                opening_sequence=movement.sequence,
                open_date=movement.timestamp,
            )
            self._open[movement.ticker] = state
            self._latest[movement.ticker] = state
            logger.debug("Opened operation %s %s at %s", self.account_id, movement.ticker, movement.sequence)
        state.start_day(day)
        self._apply_cash(state, movement, delta)

        problem = self._apply_exposure(state, movement)
        if state.is_flat:
            state.is_open = False
            state.close_date = movement.timestamp
            del self._open[movement.ticker]
            logger.debug("Closed operation %s %s at %s", self.account_id, movement.ticker, movement.sequence)

        if problem is not None:
            state.is_consistent = False
            logger.warning("Unbalanced operation %s %s: %s", self.account_id, movement.ticker, problem)
            raise UnbalancedOperationError(
                problem,
                account_id=self.account_id,
                ticker=movement.ticker,
                sequence=movement.sequence,
            )
        return self.record(state)

    def record(self, state: OperationState) -> AutoImportOperation:
        return AutoImportOperation(
            account_id=self.account_id,
            ticker=state.ticker,
            currency=state.currency,
            opening_sequence=state.opening_sequence,
            open_date=state.open_date,
            close_date=state.close_date,
            is_open=state.is_open,
            realized=state.realized,
            realized_today=state.realized - state.realized_at_day_start,
            commissions=state.commissions,
            fees=state.fees,
            premium=state.premium,
            dividends=state.dividends,
            dividend_taxes=state.dividend_taxes,
            capital_deployed=state.capital_deployed,
            capital_deployed_today=state.capital_deployed - state.capital_at_day_start,
            performance=percentage(state.realized, state.capital_deployed, self.percentage_places),
            is_consistent=state.is_consistent,
        )

    def operations(self) -> List[AutoImportOperation]:
        """Latest record per ticker."""

        return [self.record(state) for _, state in sorted(self._latest.items())]

    def open_tickers(self) -> List[str]:
        return sorted(self._open)

    def _apply_cash(self, state: OperationState, movement: Movement, delta: PositionDelta) -> None:
        state.realized += delta.realized
        state.commissions += movement.commission
        state.fees += movement.fee
        if movement.kind is MovementKind.OPTION_TRADE:
            state.premium += movement.amount
        elif movement.kind is MovementKind.DIVIDEND:
            state.dividends += movement.amount
        elif movement.kind is MovementKind.DIVIDEND_TAX:
            state.dividend_taxes += movement.amount

    def _apply_exposure(self, state: OperationState, movement: Movement) -> Optional[str]:
        """Move leg exposure; return a description when it cannot be matched."""

        if movement.kind is MovementKind.TRADE:
            held = state.legs.get(EQUITY_LEG, ZERO)
            if movement.side is TradeSide.BUY:
                state.legs[EQUITY_LEG] = held + movement.quantity
                state.capital_deployed += abs(movement.quantity) * movement.price
                return None
            if held < movement.quantity:
                state.legs[EQUITY_LEG] = ZERO
                return f"sell of {movement.quantity} exceeds tracked {held} shares"
            state.legs[EQUITY_LEG] = held - movement.quantity
            return None

        if movement.kind is not MovementKind.OPTION_TRADE:
            return None

        key = movement.contract()
        held = state.legs.get(key, ZERO)
        action = movement.option_action
        qty = movement.quantity
        if action is OptionAction.BUY_TO_OPEN or action is OptionAction.SELL_TO_OPEN:
            signed = qty if action is OptionAction.BUY_TO_OPEN else -qty
            state.legs[key] = held + signed
            multiplier = movement.multiplier or self.default_multiplier
            state.capital_deployed += abs(qty) * multiplier * key.strike
            return None

        if action is OptionAction.BUY_TO_CLOSE:
            ok = held < 0 and -held >= qty
        elif action is OptionAction.SELL_TO_CLOSE:
            ok = held > 0 and held >= qty
        else:
            ok = abs(held) >= qty
        if not ok:
            state.legs[key] = ZERO
            return f"{action.value if action else 'close'} of {qty} contracts exceeds tracked exposure {held}"
        state.legs[key] = held + qty if held < 0 else held - qty
        return None


__all__ = ["OperationConsolidator", "OperationState", "EQUITY_LEG"]
