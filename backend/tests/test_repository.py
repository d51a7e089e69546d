from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.db.init import init_database
from app.db.session import build_session_factory
from app.models import FinancialSnapshot
from app.services.repository import SqlMovementStore, list_operations, list_snapshots, list_ticker_snapshots
from factories import MovementBuilder
from folio_engine.config import EngineSettings
from folio_engine.coordinator import CancellationToken, ChunkedProcessingCoordinator, RunStatus
from folio_engine.models import OptionAction
from folio_engine.pipeline import process_movements

D0 = date(2024, 7, 1)
EXPIRY = date(2024, 7, 2)


def build_movements():
    builder = MovementBuilder("IBKR-1")
    builder.option(D0, "AAPL", OptionAction.BUY_TO_OPEN, 1, "-15.75", "215", EXPIRY, commission="0.75", fee="0.52")
    builder.option(EXPIRY, "AAPL", OptionAction.EXPIRED, 1, "0", "215", EXPIRY)
    builder.deposit(EXPIRY, "1000")
    builder.buy(EXPIRY + timedelta(days=1), "MSFT", 2, "450", commission="1")
    return builder.movements


async def make_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'folio.db'}", poolclass=NullPool)
    await init_database(engine)
    return engine, SqlMovementStore(build_session_factory(engine))


async def test_movements_round_trip_through_the_database(tmp_path):
    engine, store = await make_store(tmp_path)
    movements = build_movements()

    assert await store.add_movements(movements) == 4
    assert await store.add_movements(movements[:1]) == 1

    fetched = await store.fetch_movements("IBKR-1", 0, 10)
    assert fetched == movements
    assert await store.count_movements("IBKR-1") == 4
    assert [m.sequence for m in await store.fetch_movements("IBKR-1", 2, 1)] == [3]
    assert await store.account_ids() == ["IBKR-1"]
    await engine.dispose()


async def test_coordinator_persists_snapshots_and_operations(tmp_path):
    engine, store = await make_store(tmp_path)
    movements = build_movements()
    await store.add_movements(movements)
    await store.add_price("MSFT", "USD", EXPIRY, Decimal("455"))
    await store.add_price("MSFT", "USD", EXPIRY + timedelta(days=1), Decimal("460"))
    coordinator = ChunkedProcessingCoordinator(store, EngineSettings(chunk_size=3))

    report = await coordinator.run(["IBKR-1"])
    assert report.ok
    # Running again from scratch upserts the same rows.
    again = await coordinator.recompute("IBKR-1")
    assert again.status is RunStatus.COMPLETED

    factory = build_session_factory(engine)
    async with factory() as session:
        snapshots = await list_snapshots(session, "IBKR-1")
        count = (await session.execute(select(func.count()).select_from(FinancialSnapshot))).scalar_one()
        msft = await list_ticker_snapshots(session, "IBKR-1", "MSFT")
        operations = await list_operations(session, "IBKR-1")
        open_operations = await list_operations(session, "IBKR-1", open_only=True)

    expected = process_movements(movements, {"MSFT": "460"}).snapshot_list
    assert count == len(expected) == 3
    assert [s.date for s in snapshots] == [s.date for s in expected]
    first = snapshots[0]
    assert first.net_cash_flow == Decimal("-17.02")
    assert first.open_trades is True
    assert snapshots[1].open_trades is False
    assert snapshots[-1].invested == Decimal("901")
    assert snapshots[-1].unrealized_gains == Decimal("19")
    assert msft[-1].latest_price == Decimal("460")
    assert [o.ticker for o in operations] == ["AAPL", "MSFT"]
    assert [o.ticker for o in open_operations] == ["MSFT"]
    await engine.dispose()


async def test_missing_price_returns_none(tmp_path):
    engine, store = await make_store(tmp_path)

    assert await store.fetch_current_price("NOPE", "USD") is None
    await engine.dispose()


class CountingSqlStore(SqlMovementStore):
    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.fetched: list[int] = []

    async def fetch_movements(self, account_id, after_sequence, limit):
        movements = await super().fetch_movements(account_id, after_sequence, limit)
        self.fetched.extend(m.sequence for m in movements)
        return movements


async def test_cancelled_run_resumes_from_the_stored_checkpoint(tmp_path):
    engine, _ = await make_store(tmp_path)
    store = CountingSqlStore(build_session_factory(engine))
    movements = build_movements()
    await store.add_movements(movements)
    token = CancellationToken()

    def stop_after_first_chunk(account_id, processed, total):
        token.cancel()

    cancelled = await ChunkedProcessingCoordinator(
        store, EngineSettings(chunk_size=2), progress=stop_after_first_chunk
    ).run(["IBKR-1"], cancel=token)

    assert cancelled.for_account("IBKR-1").status is RunStatus.CANCELLED
    checkpoint = await store.load_checkpoint("IBKR-1")
    assert checkpoint.last_sequence == 2
    assert checkpoint.state is not None
    assert checkpoint.state.last_sequence == 2

    store.fetched.clear()
    resumed = await ChunkedProcessingCoordinator(store, EngineSettings(chunk_size=2)).run(["IBKR-1"])

    assert resumed.for_account("IBKR-1").status is RunStatus.COMPLETED
    assert resumed.for_account("IBKR-1").processed == 4
    assert store.fetched == [3, 4]

    factory = build_session_factory(engine)
    async with factory() as session:
        snapshots = await list_snapshots(session, "IBKR-1")
    assert snapshots == process_movements(movements).snapshot_list

    await store.clear_checkpoint("IBKR-1")
    assert await store.load_checkpoint("IBKR-1") is None
    await engine.dispose()
