"""Daily ``BrokerFinancialSnapshot`` emission for one account.

Each currency the account touches gets its own accumulator stream. A stream
emits the snapshot for its current day as soon as a movement for a later day
arrives (before that movement reaches the ledger), and ``finish`` emits the
"as of now" snapshot for every stream without resetting anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from .financials import FinancialTotals, apply_movement
from .ledger import PositionDelta, PositionLedger
from .models import BrokerFinancialSnapshot, Movement, MovementKind
from .money import ZERO, percentage
from .pricing import PriceLookup

logger = logging.getLogger(__name__)


@dataclass
class CurrencyStream:
    currency: str
    totals: FinancialTotals = field(default_factory=FinancialTotals)
    day: Optional[date] = None
    last_unrealized: Dict[str, Decimal] = field(default_factory=dict)


def stream_currencies(movement: Movement) -> List[str]:
    """Currencies whose streams a movement updates."""

    if movement.kind is MovementKind.CONVERSION and movement.from_currency:
        return [movement.from_currency, movement.currency]
    return [movement.currency]


class SnapshotBuilder:
    def __init__(self, account_id: str, ledger: PositionLedger, *, percentage_places: int = 4):
        self.account_id = account_id
        self.ledger = ledger
        self.percentage_places = percentage_places
        self.streams: Dict[str, CurrencyStream] = {}

    def totals(self, currency: str) -> FinancialTotals:
        stream = self.streams.get(currency)
        return stream.totals if stream is not None else FinancialTotals()

    def roll(self, movement: Movement, prices: PriceLookup) -> List[BrokerFinancialSnapshot]:
        """Close out streams whose day ends before ``movement``."""

        emitted = []
        for currency in stream_currencies(movement):
            stream = self.streams.get(currency)
            if stream is None or stream.day is None or stream.day == movement.day:
                continue
            emitted.append(self._emit(stream, prices))
        return emitted

    def apply(self, movement: Movement, delta: PositionDelta) -> None:
        for currency in stream_currencies(movement):
            stream = self.streams.setdefault(currency, CurrencyStream(currency=currency))
            stream.totals = apply_movement(stream.totals, movement, delta, currency=currency)
            stream.day = movement.day

    def finish(self, prices: PriceLookup) -> List[BrokerFinancialSnapshot]:
        return [
            self._emit(stream, prices)
            for _, stream in sorted(self.streams.items())
            if stream.day is not None
        ]

    def _emit(self, stream: CurrencyStream, prices: PriceLookup) -> BrokerFinancialSnapshot:
        if stream.day is None:
            raise ValueError("Cannot emit a snapshot for a stream with no movements")
        totals = stream.totals
        invested = self.ledger.invested(stream.currency)
        unrealized = self._unrealized(stream, prices)
        denominator = invested if invested != 0 else totals.net_cash_flow
        snapshot = BrokerFinancialSnapshot(
            account_id=self.account_id,
            currency=stream.currency,
            date=stream.day,
            movement_counter=totals.movement_counter,
            realized_gains=totals.realized_gains,
            realized_percentage=percentage(totals.realized_gains, denominator, self.percentage_places),
            unrealized_gains=unrealized,
            unrealized_gains_percentage=percentage(unrealized, invested, self.percentage_places),
            invested=invested,
            commissions=totals.commissions,
            fees=totals.fees,
            deposited=totals.deposited,
            withdrawn=totals.withdrawn,
            dividends_received=totals.dividends_received,
            options_income=totals.options_income,
            other_income=totals.other_income,
            open_trades=self.ledger.has_open_trades(stream.currency),
            net_cash_flow=totals.net_cash_flow,
            cash=totals.cash,
        )
        logger.debug(
            "Snapshot %s %s %s counter=%s",
            self.account_id,
            stream.currency,
            stream.day,
            totals.movement_counter,
        )
        return snapshot

    def _unrealized(self, stream: CurrencyStream, prices: PriceLookup) -> Decimal:
        current: Dict[str, Decimal] = {}
        for position in self.ledger.open_positions(stream.currency):
            price = prices.price_for(position.ticker, stream.currency)
            if price is None:
                current[position.ticker] = stream.last_unrealized.get(position.ticker, ZERO)
            else:
                current[position.ticker] = price * position.quantity - position.cost_total
        stream.last_unrealized = current
        return sum(current.values(), ZERO)


__all__ = ["SnapshotBuilder", "CurrencyStream", "stream_currencies"]
