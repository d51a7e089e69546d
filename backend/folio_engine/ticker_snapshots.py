"""Per (ticker, currency) daily position snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .ledger import PositionDelta, PositionLedger
from .models import Movement, MovementKind, TickerCurrencySnapshot
from .money import ZERO, percentage
from .pricing import PriceLookup

logger = logging.getLogger(__name__)


@dataclass
class TickerStream:
    ticker: str
    currency: str
    day: Optional[date] = None
    movement_counter: int = 0
    realized: Decimal = ZERO
    dividends: Decimal = ZERO
    dividend_taxes: Decimal = ZERO
    options: Decimal = ZERO
    commissions: Decimal = ZERO
    fees: Decimal = ZERO
    unrealized: Decimal = ZERO
    unrealized_percentage: Decimal = ZERO
    latest_price: Optional[Decimal] = None


class TickerSnapshotBuilder:
    def __init__(self, account_id: str, ledger: PositionLedger, *, percentage_places: int = 4):
        self.account_id = account_id
        self.ledger = ledger
        self.percentage_places = percentage_places
        self.streams: Dict[Tuple[str, str], TickerStream] = {}

    def roll(self, movement: Movement, prices: PriceLookup) -> List[TickerCurrencySnapshot]:
        if not movement.ticker:
            return []
        stream = self.streams.get((movement.ticker, movement.currency))
        if stream is None or stream.day is None or stream.day == movement.day:
            return []
        return [self._emit(stream, prices)]

    def apply(self, movement: Movement, delta: PositionDelta) -> None:
        if not movement.ticker:
            return
        key = (movement.ticker, movement.currency)
        stream = self.streams.setdefault(key, TickerStream(ticker=movement.ticker, currency=movement.currency))
        stream.movement_counter += 1
        stream.day = movement.day
        stream.realized += delta.realized
        stream.commissions += movement.commission
        stream.fees += movement.fee
        if movement.kind is MovementKind.DIVIDEND:
            stream.dividends += movement.amount
        elif movement.kind is MovementKind.DIVIDEND_TAX:
            stream.dividends -= movement.amount
            stream.dividend_taxes += movement.amount
        elif movement.kind is MovementKind.OPTION_TRADE:
            stream.options += movement.net_premium

    def finish(self, prices: PriceLookup) -> List[TickerCurrencySnapshot]:
        return [
            self._emit(stream, prices)
            for _, stream in sorted(self.streams.items())
            if stream.day is not None
        ]

    def _emit(self, stream: TickerStream, prices: PriceLookup) -> TickerCurrencySnapshot:
        if stream.day is None:
            raise ValueError("Cannot emit a snapshot for a stream with no movements")
        position = self.ledger.position(stream.ticker, stream.currency)
        if position.quantity == 0:
            stream.unrealized = ZERO
            stream.unrealized_percentage = ZERO
        else:
            price = prices.price_for(stream.ticker, stream.currency)
            if price is not None:
                stream.latest_price = price
                stream.unrealized = price * position.quantity - position.cost_total
                stream.unrealized_percentage = percentage(
                    stream.unrealized, position.cost_total, self.percentage_places
                )
        logger.debug("Ticker snapshot %s %s %s %s", self.account_id, stream.ticker, stream.currency, stream.day)
        return TickerCurrencySnapshot(
            account_id=self.account_id,
            ticker=stream.ticker,
            currency=stream.currency,
            date=stream.day,
            movement_counter=stream.movement_counter,
            quantity=position.quantity,
            average_cost=position.average_cost,
            cost_basis=position.cost_total,
            realized=stream.realized,
            unrealized=stream.unrealized,
            unrealized_percentage=stream.unrealized_percentage,
            dividends=stream.dividends,
            dividend_taxes=stream.dividend_taxes,
            options=stream.options,
            commissions=stream.commissions,
            fees=stream.fees,
            latest_price=stream.latest_price,
            open_trades=self.ledger.is_open(stream.ticker, stream.currency),
        )


__all__ = ["TickerSnapshotBuilder", "TickerStream"]
