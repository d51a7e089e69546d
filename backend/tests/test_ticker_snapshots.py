from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from factories import MovementBuilder
from folio_engine.models import OptionAction
from folio_engine.pipeline import AccountState, process_movements

D0 = date(2024, 6, 3)
D1 = D0 + timedelta(days=1)
D2 = D0 + timedelta(days=2)
EXPIRY = date(2024, 6, 21)


def by_ticker(result, ticker):
    return [s for s in result.ticker_snapshot_list if s.ticker == ticker]


def test_ticker_position_dividends_and_unrealized():
    builder = MovementBuilder()
    builder.buy(D0, "KO", 10, "60", commission="1")
    builder.buy(D1, "KO", 10, "62", commission="1")
    builder.dividend(D1, "KO", "4.60")
    builder.dividend_tax(D1, "KO", "0.69")
    builder.sell(D2, "KO", 5, "65", commission="1")

    result = process_movements(builder.movements, {"KO": "64"})
    snapshots = by_ticker(result, "KO")

    assert [s.date for s in snapshots] == [D0, D1, D2]
    assert [s.movement_counter for s in snapshots] == [1, 4, 5]
    last = snapshots[-1]
    assert last.quantity == Decimal("15")
    assert last.average_cost == Decimal("61.1")
    assert last.cost_basis == Decimal("916.5")
    # (325 - 1) - 5 * 61.1
    assert last.realized == Decimal("18.5")
    assert last.dividends == Decimal("3.91")
    assert last.dividend_taxes == Decimal("0.69")
    assert last.commissions == Decimal("3")
    assert last.latest_price == Decimal("64")
    assert last.unrealized == Decimal("43.5")
    assert last.open_trades is True


def test_missing_price_carries_unrealized_forward():
    builder = MovementBuilder()
    builder.buy(D0, "NVDA", 2, "100")
    builder.buy(D1, "NVDA", 2, "100")
    state = AccountState("ACC-1")

    state.apply_chunk(builder.movements[:1], {"NVDA": "110"})
    later = state.apply_chunk(builder.movements[1:], None)

    (snapshot,) = [s for s in later.ticker_snapshot_list if s.date == D1]
    assert snapshot.quantity == Decimal("4")
    assert snapshot.unrealized == Decimal("20")
    assert snapshot.latest_price == Decimal("110")


def test_closed_position_has_no_unrealized():
    builder = MovementBuilder()
    builder.buy(D0, "AMD", 5, "100")
    builder.sell(D1, "AMD", 5, "90")

    result = process_movements(builder.movements, {"AMD": "150"})
    last = by_ticker(result, "AMD")[-1]

    assert last.quantity == 0
    assert last.unrealized == 0
    assert last.realized == Decimal("-50")
    assert last.open_trades is False


def test_option_only_ticker_tracks_net_premium():
    builder = MovementBuilder()
    builder.option(D0, "SPY", OptionAction.SELL_TO_OPEN, 1, "210", "520", EXPIRY, commission="0.65", fee="0.04")
    builder.option(D1, "SPY", OptionAction.BUY_TO_CLOSE, 1, "-60", "520", EXPIRY, commission="0.65", fee="0.04")

    snapshots = by_ticker(process_movements(builder.movements), "SPY")

    assert snapshots[0].options == Decimal("209.31")
    assert snapshots[0].open_trades is True
    assert snapshots[-1].options == Decimal("148.62")
    assert snapshots[-1].realized == Decimal("148.62")
    assert snapshots[-1].quantity == 0
    assert snapshots[-1].open_trades is False


def test_cash_movements_produce_no_ticker_snapshots():
    builder = MovementBuilder()
    builder.deposit(D0, "100")
    builder.interest(D1, "1")

    assert process_movements(builder.movements).ticker_snapshot_list == []
