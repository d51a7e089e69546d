"""Current-price lookups used for unrealized gains.

Prices are best effort: a source raises ``PriceUnavailable`` when it has
nothing for a ticker and the lookup layer turns that into ``None`` so the
snapshot builders can carry the previous unrealized values forward.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Mapping, MutableMapping, Optional, Protocol, Tuple, Union

from .errors import PriceUnavailable
from .money import to_decimal

logger = logging.getLogger(__name__)

PriceKey = Tuple[str, str]


class PriceSource(Protocol):
    """Pluggable provider of the latest price for a ticker."""

    def get_latest_price(self, ticker: str, currency: str) -> Decimal:
        ...


class PriceLookup(Protocol):
    """What the snapshot builders consume: a price or ``None``."""

    def price_for(self, ticker: str, currency: str) -> Optional[Decimal]:
        ...


class InMemoryPriceSource:
    """Simple price source for tests and examples.

    Keys are either ``ticker`` (any currency) or ``(ticker, currency)``.
    """

    def __init__(self, prices: Mapping[Union[str, PriceKey], Union[Decimal, str, int, float]]):
        self._prices: Dict[Union[str, PriceKey], Decimal] = {
            key: to_decimal(value) for key, value in prices.items()
        }

    def get_latest_price(self, ticker: str, currency: str) -> Decimal:
        for key in ((ticker, currency), ticker):
            if key in self._prices:
                return self._prices[key]
        raise PriceUnavailable(f"No price for {ticker} in {currency}")


class PriceBook:
    """Resolved prices for one processing pass; missing keys mean no price."""

    def __init__(self, prices: Optional[Mapping[PriceKey, Optional[Decimal]]] = None):
        self._prices: Dict[PriceKey, Optional[Decimal]] = dict(prices or {})

    def __contains__(self, key: object) -> bool:
        return key in self._prices

    def set(self, ticker: str, currency: str, price: Optional[Decimal]) -> None:
        self._prices[(ticker, currency)] = price

    def price_for(self, ticker: str, currency: str) -> Optional[Decimal]:
        return self._prices.get((ticker, currency))


class CachingPriceSource:
    """Cache wrapper that remembers hits and misses for a source."""

    def __init__(self, delegate: PriceSource):
        self.delegate = delegate
        self._cache: MutableMapping[PriceKey, Optional[Decimal]] = {}

    def price_for(self, ticker: str, currency: str) -> Optional[Decimal]:
        key = (ticker, currency)
        if key not in self._cache:
            try:
                self._cache[key] = self.delegate.get_latest_price(ticker, currency)
            except PriceUnavailable:
                logger.warning("No current price for %s in %s; unrealized values carried forward", ticker, currency)
                self._cache[key] = None
        return self._cache[key]


PriceInput = Union[PriceLookup, PriceSource, Mapping[Union[str, PriceKey], Union[Decimal, str, int, float]], None]


def as_price_lookup(prices: PriceInput) -> PriceLookup:
    """Normalise the price argument accepted by ``process_movements``."""

    if prices is None:
        return PriceBook()
    if hasattr(prices, "price_for"):
        return prices  # type: ignore[return-value]
    if hasattr(prices, "get_latest_price"):
        return CachingPriceSource(prices)  # type: ignore[arg-type]
    return CachingPriceSource(InMemoryPriceSource(prices))  # type: ignore[arg-type]


__all__ = [
    "PriceSource",
    "PriceLookup",
    "InMemoryPriceSource",
    "PriceBook",
    "CachingPriceSource",
    "as_price_lookup",
]
