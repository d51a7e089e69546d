"""Running quantity and cost-basis tracking per (account, ticker, currency).

Equity positions use weighted-average cost. Option legs are kept as FIFO
lots per contract so closing, expiring and assigned contracts can be matched
against the premium collected or paid when they were opened. Every public
mutation validates the whole movement first, so a rejected movement never
leaves a partially updated ledger behind.
"""

from __future__ import annotations

import copy
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Deque, Dict, Iterator, List, Optional, Tuple

from .config import DEFAULT_OPTION_MULTIPLIER
from .errors import InvalidMovementError
from .models import Movement, MovementKind, OptionAction, OptionContract, TradeSide
from .money import ZERO

PositionKey = Tuple[str, str]


@dataclass
class _EquityPosition:
    quantity: Decimal = ZERO
    cost_total: Decimal = ZERO
    # Assignment premium waiting for shares to land.
    pending_adjustment: Decimal = ZERO

    @property
    def average_cost(self) -> Decimal:
        if self.quantity == 0:
            return ZERO
        return self.cost_total / self.quantity


@dataclass
class _OptionLot:
    contracts: Decimal
    # Net premium still attached to the open contracts.
    net_total: Decimal
    short: bool

    def take(self, contracts: Decimal) -> Decimal:
        """Remove ``contracts`` and return their share of the net premium."""

        if contracts == self.contracts:
            share = self.net_total
        else:
            share = self.net_total * contracts / self.contracts
        self.contracts -= contracts
        self.net_total -= share
        if self.contracts == 0:
            self.net_total = ZERO
        return share


@dataclass(frozen=True)
class PositionView:
    """Read-only view of an equity position."""

    ticker: str
    currency: str
    quantity: Decimal
    cost_total: Decimal
    average_cost: Decimal


@dataclass(frozen=True)
class PositionDelta:
    """Effect of one movement on the ledger."""

    realized: Decimal = ZERO
    quantity: Decimal = ZERO
    cost: Decimal = ZERO
    contracts: Decimal = ZERO
    option_income: Decimal = ZERO
    opening_notional: Decimal = ZERO
    ticker_open: bool = False


@dataclass
class PositionLedger:
    """Ledger for a single account."""

    account_id: str
    default_multiplier: Decimal = DEFAULT_OPTION_MULTIPLIER
    _equities: Dict[PositionKey, _EquityPosition] = field(default_factory=dict)
    _options: Dict[OptionContract, Deque[_OptionLot]] = field(default_factory=dict)

    # Queries

    def position(self, ticker: str, currency: str) -> PositionView:
        pos = self._equities.get((ticker, currency), _EquityPosition())
        return PositionView(
            ticker=ticker,
            currency=currency,
            quantity=pos.quantity,
            cost_total=pos.cost_total,
            average_cost=pos.average_cost,
        )

    def open_positions(self, currency: Optional[str] = None) -> List[PositionView]:
        views = []
        for (ticker, ccy), pos in sorted(self._equities.items()):
            if pos.quantity == 0:
                continue
            if currency is not None and ccy != currency:
                continue
            views.append(self.position(ticker, ccy))
        return views

    def invested(self, currency: str) -> Decimal:
        return sum((view.cost_total for view in self.open_positions(currency)), ZERO)

    def open_contracts(self, ticker: Optional[str] = None, currency: Optional[str] = None) -> Decimal:
        total = ZERO
        for contract, lots in self._options.items():
            if ticker is not None and contract.ticker != ticker:
                continue
            if currency is not None and contract.currency != currency:
                continue
            total += sum((lot.contracts for lot in lots), ZERO)
        return total

    def has_open_trades(self, currency: Optional[str] = None) -> bool:
        return bool(self.open_positions(currency)) or self.open_contracts(currency=currency) > 0

    def is_open(self, ticker: str, currency: str) -> bool:
        pos = self._equities.get((ticker, currency))
        if pos is not None and pos.quantity != 0:
            return True
        return self.open_contracts(ticker=ticker, currency=currency) > 0

    def tickers(self) -> Iterator[PositionKey]:
        keys = set(self._equities)
        keys.update((contract.ticker, contract.currency) for contract in self._options)
        return iter(sorted(keys))

    def copy(self) -> "PositionLedger":
        return copy.deepcopy(self)

    # Mutation

    def apply(self, movement: Movement) -> PositionDelta:
        """Apply a movement and return its effect on positions."""

        if movement.account_id != self.account_id:
            raise self._error(movement, f"Ledger for {self.account_id} cannot apply movement of {movement.account_id}")
        if movement.kind is MovementKind.TRADE:
            return self._apply_trade(movement)
        if movement.kind is MovementKind.OPTION_TRADE:
            return self._apply_option(movement)
        if movement.ticker:
            return PositionDelta(ticker_open=self.is_open(movement.ticker, movement.currency))
        return PositionDelta()

    def _apply_trade(self, movement: Movement) -> PositionDelta:
        if movement.ticker is None:
            raise self._error(movement, "Trade without a ticker")
        key = (movement.ticker, movement.currency)
        pos = self._equities.get(key)
        qty = movement.quantity
        gross = qty * movement.price

        if movement.side is TradeSide.BUY:
            if pos is None:
                pos = self._equities.setdefault(key, _EquityPosition())
            cost = gross + movement.commission + movement.fee - pos.pending_adjustment
            pos.pending_adjustment = ZERO
            pos.quantity += qty
            pos.cost_total += cost
            return PositionDelta(
                quantity=qty,
                cost=cost,
                opening_notional=gross,
                ticker_open=True,
            )

        if movement.side is TradeSide.SELL:
            held = pos.quantity if pos is not None else ZERO
            if qty > held:
                raise self._error(
                    movement,
                    f"Sell of {qty} {movement.ticker} exceeds tracked quantity {held}",
                )
            if pos is None:
                raise self._error(movement, f"No tracked position in {movement.ticker}")
            if qty == pos.quantity:
                removed = pos.cost_total
            else:
                removed = pos.average_cost * qty
            realized = (gross - movement.commission - movement.fee) - removed
            pos.quantity -= qty
            pos.cost_total -= removed
            if pos.quantity == 0:
                pos.cost_total = ZERO
            return PositionDelta(
                realized=realized,
                quantity=-qty,
                cost=-removed,
                ticker_open=self.is_open(movement.ticker, movement.currency),
            )

        raise self._error(movement, f"Unsupported trade side {movement.side!r}")

    def _apply_option(self, movement: Movement) -> PositionDelta:
        action = movement.option_action
        contract = movement.contract()
        qty = movement.quantity
        multiplier = movement.multiplier or self.default_multiplier

        if action is not None and action.is_opening:
            lot = _OptionLot(
                contracts=qty,
                net_total=movement.net_premium,
                short=action is OptionAction.SELL_TO_OPEN,
            )
            self._options.setdefault(contract, deque()).append(lot)
            return PositionDelta(
                contracts=qty,
                option_income=movement.amount,
                opening_notional=qty * multiplier * contract.strike,
                ticker_open=True,
            )

        if action is OptionAction.BUY_TO_CLOSE:
            matches = self._match_lots(movement, contract, short=True)
        elif action is OptionAction.SELL_TO_CLOSE:
            matches = self._match_lots(movement, contract, short=False)
        elif action in (OptionAction.EXPIRED, OptionAction.ASSIGNED, OptionAction.EXERCISED):
            matches = self._match_lots(movement, contract, short=None)
        else:
            raise self._error(movement, f"Unsupported option action {action!r}")

        # Validation is done; consume the matched lots.
        lots = self._options[contract]
        open_value = ZERO
        for lot, contracts in matches:
            open_value += lot.take(contracts)
        while lots and lots[0].contracts == 0:
            lots.popleft()
        for lot in [lot for lot in lots if lot.contracts == 0]:
            lots.remove(lot)
        if not lots:
            del self._options[contract]

        outcome = open_value + movement.net_premium
        realized = outcome
        cost = ZERO
        if action is not None and action.folds_into_underlying:
            realized = ZERO
            cost = self._fold_premium(contract.ticker, contract.currency, outcome)

        return PositionDelta(
            realized=realized,
            cost=cost,
            contracts=-qty,
            option_income=movement.amount,
            ticker_open=self.is_open(contract.ticker, contract.currency),
        )

    def _match_lots(
        self,
        movement: Movement,
        contract: OptionContract,
        *,
        short: Optional[bool],
    ) -> List[Tuple[_OptionLot, Decimal]]:
        lots = self._options.get(contract, deque())
        remaining = movement.quantity
        matches: List[Tuple[_OptionLot, Decimal]] = []
        for lot in lots:
            if remaining == 0:
                break
            if short is not None and lot.short != short:
                continue
            matched = min(remaining, lot.contracts)
            matches.append((lot, matched))
            remaining -= matched
        if remaining > 0:
            raise self._error(
                movement,
                f"Closing {movement.quantity} contracts of {contract.ticker} {contract.option_type.value} "
                f"{contract.strike} {contract.expiration} exceeds open contracts",
            )
        return matches

    def _fold_premium(self, ticker: str, currency: str, premium: Decimal) -> Decimal:
        """Move an assigned/exercised option's premium into the underlying's cost."""

        pos = self._equities.setdefault((ticker, currency), _EquityPosition())
        if pos.quantity > 0:
            pos.cost_total -= premium
            return -premium
        pos.pending_adjustment += premium
        return ZERO

    def _error(self, movement: Movement, message: str) -> InvalidMovementError:
        return InvalidMovementError(
            message,
            account_id=movement.account_id,
            sequence=movement.sequence,
            kind=movement.kind.value,
        )


__all__ = ["PositionLedger", "PositionDelta", "PositionView"]
