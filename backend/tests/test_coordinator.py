from __future__ import annotations

import asyncio
from datetime import date, timedelta
from decimal import Decimal

from factories import MovementBuilder
from folio_engine.config import EngineSettings
from folio_engine.coordinator import CancellationToken, ChunkedProcessingCoordinator, RunStatus
from folio_engine.models import OptionAction
from folio_engine.pipeline import process_movements
from folio_engine.store import InMemoryMovementStore

D0 = date(2024, 4, 1)
EXPIRY = date(2024, 4, 19)


def history(account_id: str) -> list:
    builder = MovementBuilder(account_id)
    builder.deposit(D0, "5000")
    builder.buy(D0, "AAPL", 10, "170", commission="1")
    builder.option(D0 + timedelta(days=1), "AAPL", OptionAction.SELL_TO_OPEN, 1, "150", "180", EXPIRY, commission="0.65")
    builder.dividend(D0 + timedelta(days=2), "AAPL", "2.40")
    builder.sell(D0 + timedelta(days=3), "AAPL", 4, "176", commission="1")
    builder.option(EXPIRY, "AAPL", OptionAction.EXPIRED, 1, "0", "180", EXPIRY)
    builder.withdraw(EXPIRY, "100")
    return builder.movements


def settings(**overrides) -> EngineSettings:
    values = {"chunk_size": 2, "max_concurrency": 2}
    values.update(overrides)
    return EngineSettings(**values)


async def test_run_matches_in_memory_fold_and_reports_progress():
    movements = history("ACC-1") + history("ACC-2")
    store = InMemoryMovementStore(movements, prices={"AAPL": "181"})
    progress: list[tuple[str, int, int]] = []
    coordinator = ChunkedProcessingCoordinator(
        store, settings(), progress=lambda account, done, total: progress.append((account, done, total))
    )

    report = await coordinator.run(["ACC-1", "ACC-2"])

    assert report.ok
    assert report.for_account("ACC-1").processed == 7
    assert report.for_account("ACC-1").last_sequence == 7
    expected = process_movements(history("ACC-1"), {"AAPL": "181"})
    assert store.snapshots_for("ACC-1") == expected.snapshot_list
    acc1_progress = [item for item in progress if item[0] == "ACC-1"]
    assert acc1_progress == [("ACC-1", 2, 7), ("ACC-1", 4, 7), ("ACC-1", 6, 7), ("ACC-1", 7, 7)]
    # one price lookup per ticker and account run
    assert store.price_requests == 2


async def test_failed_account_does_not_affect_others():
    good = history("GOOD")
    bad = MovementBuilder("BAD")
    bad.deposit(D0, "100")
    bad.buy(D0, "MSFT", 1, "50")
    bad.sell(D0 + timedelta(days=1), "MSFT", 2, "55")
    store = InMemoryMovementStore(good + bad.movements)
    coordinator = ChunkedProcessingCoordinator(store, settings())

    report = await coordinator.run(["GOOD", "BAD"])

    assert report.for_account("GOOD").status is RunStatus.COMPLETED
    failed = report.for_account("BAD")
    assert failed.status is RunStatus.FAILED
    assert failed.error["error"] == "InvalidMovementError"
    assert failed.error["sequence"] == "3"
    assert failed.processed == 2
    assert store.checkpoints["BAD"].last_sequence == 2
    assert report.failed == [failed]


async def test_cancel_between_chunks_then_resume():
    movements = history("ACC-1")
    store = InMemoryMovementStore(movements)
    token = CancellationToken()

    def stop_after_first_chunk(account_id, processed, total):
        token.cancel()

    coordinator = ChunkedProcessingCoordinator(store, settings(), progress=stop_after_first_chunk)
    report = await coordinator.run(["ACC-1"], cancel=token)

    result = report.for_account("ACC-1")
    assert result.status is RunStatus.CANCELLED
    assert result.processed == 2
    assert store.checkpoints["ACC-1"].last_sequence == 2

    resumed = await ChunkedProcessingCoordinator(store, settings()).run(["ACC-1"])

    assert resumed.for_account("ACC-1").status is RunStatus.COMPLETED
    assert resumed.for_account("ACC-1").processed == 7
    assert store.snapshots_for("ACC-1") == process_movements(movements).snapshot_list


async def test_cancelled_before_start():
    store = InMemoryMovementStore(history("ACC-1"))
    token = CancellationToken()
    token.cancel()

    report = await ChunkedProcessingCoordinator(store, settings()).run(["ACC-1"], cancel=token)

    assert report.cancelled[0].processed == 0
    assert store.snapshots == {}


async def test_recompute_rebuilds_from_first_movement():
    movements = history("ACC-1")
    store = InMemoryMovementStore(movements)
    coordinator = ChunkedProcessingCoordinator(store, settings())
    await coordinator.run(["ACC-1"])

    result = await coordinator.recompute("ACC-1")

    assert result.status is RunStatus.COMPLETED
    assert result.processed == len(movements)
    last = store.snapshots_for("ACC-1")[-1]
    assert last.movement_counter == len(movements)
    assert last.withdrawn == Decimal("100")


async def test_missing_prices_do_not_fail_the_run():
    store = InMemoryMovementStore(history("ACC-1"))

    report = await ChunkedProcessingCoordinator(store, settings()).run(["ACC-1"])

    assert report.ok
    assert all(s.unrealized_gains == 0 for s in store.snapshots_for("ACC-1"))


async def test_concurrency_is_bounded():
    class TrackingStore(InMemoryMovementStore):
        active = 0
        peak = 0

        async def fetch_movements(self, account_id, after_sequence, limit):
            TrackingStore.active += 1
            TrackingStore.peak = max(TrackingStore.peak, TrackingStore.active)
            await asyncio.sleep(0)
            try:
                return await super().fetch_movements(account_id, after_sequence, limit)
            finally:
                TrackingStore.active -= 1

    accounts = [f"ACC-{n}" for n in range(4)]
    store = TrackingStore([m for account in accounts for m in history(account)])

    report = await ChunkedProcessingCoordinator(store, settings(max_concurrency=1)).run(accounts)

    assert report.ok
    assert TrackingStore.peak == 1


async def test_async_progress_callback_is_awaited():
    store = InMemoryMovementStore(history("ACC-1"))
    seen: list[int] = []

    async def record(account_id, processed, total):
        await asyncio.sleep(0)
        seen.append(processed)

    await ChunkedProcessingCoordinator(store, settings(chunk_size=10), progress=record).run(["ACC-1"])

    assert seen == [7]
