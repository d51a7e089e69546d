from __future__ import annotations

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool

from app.api.dependencies.store import get_movement_store
from app.db.init import init_database
from app.db.session import build_session_factory, get_db
from app.main import app
from app.services.repository import SqlMovementStore
from factories import MovementBuilder
from folio_engine.models import OptionAction

D0 = date(2024, 8, 5)
EXPIRY = date(2024, 8, 6)


def build_movements():
    builder = MovementBuilder("ACC-API")
    builder.option(D0, "AAPL", OptionAction.BUY_TO_OPEN, 1, "-15.75", "210", EXPIRY, commission="0.75", fee="0.52")
    builder.option(EXPIRY, "AAPL", OptionAction.EXPIRED, 1, "0", "210", EXPIRY)
    builder.buy(EXPIRY, "MSFT", 1, "400")
    broken = MovementBuilder("ACC-BROKEN")
    broken.buy(D0, "MSFT", 1, "400")
    broken.sell(EXPIRY, "MSFT", 3, "410")
    return builder.movements + broken.movements


@pytest.fixture
def client(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)
    factory = build_session_factory(engine)
    store = SqlMovementStore(factory)

    async def seed() -> None:
        await init_database(engine)
        await store.add_movements(build_movements())

    asyncio.run(seed())

    async def override_db():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_movement_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        asyncio.run(engine.dispose())


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_recompute_then_read_snapshots(client):
    response = client.post("/accounts/ACC-API/recompute")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["processed"] == 3

    snapshots = client.get("/accounts/ACC-API/snapshots", params={"currency": "USD"}).json()
    assert [item["date"] for item in snapshots] == [D0.isoformat(), EXPIRY.isoformat()]
    assert Decimal(snapshots[0]["net_cash_flow"]) == Decimal("-17.02")
    assert snapshots[0]["open_trades"] is True
    assert Decimal(snapshots[1]["invested"]) == Decimal("400")

    tickers = client.get("/accounts/ACC-API/tickers/msft/snapshots").json()
    assert len(tickers) == 1
    assert Decimal(tickers[0]["quantity"]) == Decimal("1")

    operations = client.get("/accounts/ACC-API/operations").json()
    assert [op["ticker"] for op in operations] == ["AAPL", "MSFT"]
    open_only = client.get("/accounts/ACC-API/operations", params={"open_only": True}).json()
    assert [op["ticker"] for op in open_only] == ["MSFT"]


def test_recompute_failure_returns_422_with_context(client):
    response = client.post("/accounts/ACC-BROKEN/recompute")

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "InvalidMovementError"
    assert detail["account_id"] == "ACC-BROKEN"
    assert detail["sequence"] == "2"


def test_unknown_account_has_no_snapshots(client):
    assert client.get("/accounts/NOPE/snapshots").json() == []
