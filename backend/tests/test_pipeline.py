from __future__ import annotations

import dataclasses
from datetime import date, timedelta

import pytest

from factories import MovementBuilder
from folio_engine.errors import InvalidMovementError
from folio_engine.models import OptionAction
from folio_engine.pipeline import AccountState, ProcessingResult, process_movements

D0 = date(2024, 1, 8)
EXPIRY = date(2024, 1, 19)


def build_history() -> MovementBuilder:
    builder = MovementBuilder()
    day = lambda n: D0 + timedelta(days=n)  # noqa: E731
    builder.deposit(day(0), "10000")
    builder.buy(day(0), "AAPL", 20, "185.5", commission="1")
    builder.option(day(1), "AAPL", OptionAction.SELL_TO_OPEN, 1, "240", "195", EXPIRY, commission="0.65")
    builder.dividend(day(2), "AAPL", "4.80")
    builder.dividend_tax(day(2), "AAPL", "0.72")
    builder.convert(day(3), "USD", "1000", "EUR", "915.30")
    builder.buy(day(3), "SAP", 5, "170", currency="EUR", commission="2")
    builder.option(day(4), "AAPL", OptionAction.BUY_TO_CLOSE, 1, "-35", "195", EXPIRY, commission="0.65")
    builder.sell(day(5), "AAPL", 10, "190", commission="1")
    builder.interest(day(5), "3.12")
    builder.sell(day(6), "SAP", 5, "176", currency="EUR", commission="2")
    builder.fee(day(6), "1.5")
    return builder


PRICES = {"AAPL": "192", ("SAP", "EUR"): "175"}


def as_values(result: ProcessingResult):
    return (
        result.snapshots,
        result.ticker_snapshots,
        result.operations,
    )


def test_replay_is_deterministic():
    movements = build_history().movements

    first = process_movements(movements, PRICES)
    second = process_movements(movements, PRICES)

    assert as_values(first) == as_values(second)
    assert first.processed == len(movements)


@pytest.mark.parametrize("split", [1, 3, 6, 9, 11])
def test_two_chunks_match_single_pass(split):
    movements = build_history().movements
    single = process_movements(movements, PRICES)

    state = AccountState("ACC-1")
    combined = ProcessingResult()
    combined.merge(state.apply_chunk(movements[:split], PRICES))
    combined.merge(state.apply_chunk(movements[split:], PRICES))

    assert as_values(combined) == as_values(single)
    assert state.snapshots.totals("USD") == single_pass_totals(movements, "USD")


def single_pass_totals(movements, currency):
    state = AccountState("ACC-1")
    state.apply_chunk(movements, PRICES)
    return state.snapshots.totals(currency)


def test_checkpoint_copy_resumes_identically():
    movements = build_history().movements
    state = AccountState("ACC-1")
    state.apply_chunk(movements[:5], PRICES)
    saved = state.copy()

    state.apply_chunk(movements[5:], PRICES)
    resumed = saved.apply_chunk(movements[5:], PRICES)

    assert saved.last_sequence == state.last_sequence
    assert dataclasses.asdict(saved.snapshots.totals("EUR")) == dataclasses.asdict(state.snapshots.totals("EUR"))
    assert resumed.snapshot_list[-1] == process_movements(movements, PRICES).snapshot_list[-1]


def test_out_of_order_sequence_is_rejected_with_context():
    builder = build_history()
    movements = builder.movements
    swapped = [movements[0], movements[2], movements[1]]

    with pytest.raises(InvalidMovementError) as excinfo:
        process_movements(swapped)

    assert excinfo.value.account_id == "ACC-1"
    assert excinfo.value.sequence == movements[1].sequence
    assert excinfo.value.kind == "TRADE"


def test_movement_from_other_account_is_rejected():
    movements = build_history().movements
    other = MovementBuilder("ACC-2")
    stray = other.deposit(D0 + timedelta(days=10), "1")
    stray = dataclasses.replace(stray, sequence=100)

    with pytest.raises(InvalidMovementError):
        process_movements(list(movements) + [stray])


def test_unknown_kind_is_rejected():
    builder = MovementBuilder()
    movement = dataclasses.replace(builder.deposit(D0, "1"), kind="BONUS")

    with pytest.raises(InvalidMovementError):
        process_movements([movement])


def test_empty_history_emits_nothing():
    result = process_movements([])

    assert result.snapshot_list == []
    assert result.operation_list == []
