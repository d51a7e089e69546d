from __future__ import annotations

from decimal import Decimal

import pytest

from folio_engine.errors import PriceUnavailable
from folio_engine.pricing import CachingPriceSource, InMemoryPriceSource, PriceBook, as_price_lookup


class CountingSource:
    def __init__(self, prices):
        self.inner = InMemoryPriceSource(prices)
        self.calls = 0

    def get_latest_price(self, ticker, currency):
        self.calls += 1
        return self.inner.get_latest_price(ticker, currency)


def test_currency_specific_price_wins_over_plain_ticker():
    source = InMemoryPriceSource({"SAP": "170", ("SAP", "EUR"): "160.5"})

    assert source.get_latest_price("SAP", "EUR") == Decimal("160.5")
    assert source.get_latest_price("SAP", "USD") == Decimal("170")
    with pytest.raises(PriceUnavailable):
        source.get_latest_price("MSFT", "USD")


def test_caching_source_remembers_hits_and_misses(caplog):
    source = CountingSource({"AAPL": 192})
    cached = CachingPriceSource(source)

    assert cached.price_for("AAPL", "USD") == Decimal("192")
    assert cached.price_for("AAPL", "USD") == Decimal("192")
    assert cached.price_for("MSFT", "USD") is None
    assert cached.price_for("MSFT", "USD") is None

    assert source.calls == 2
    assert "No current price for MSFT" in caplog.text


def test_as_price_lookup_normalises_inputs():
    book = PriceBook()
    book.set("AAPL", "USD", Decimal("1"))

    assert as_price_lookup(book) is book
    assert as_price_lookup(None).price_for("AAPL", "USD") is None
    assert as_price_lookup({"AAPL": "3.5"}).price_for("AAPL", "USD") == Decimal("3.5")
    assert isinstance(as_price_lookup(InMemoryPriceSource({})), CachingPriceSource)
    assert ("AAPL", "USD") in book
