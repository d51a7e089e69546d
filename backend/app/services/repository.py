"""SQLAlchemy implementation of the engine's movement store.

Writes are natural-key upserts done as select-then-update so the same code
runs on PostgreSQL and SQLite. Checkpoints keep the resume cursor together
with the pickled account state, so a resumed run only fetches the movements
after the cursor.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import (
    BrokerMovement,
    DailyBar,
    FinancialSnapshot,
    Operation,
    ProcessingCheckpoint,
    TickerSnapshot,
)
from folio_engine.models import (
    AutoImportOperation,
    BrokerFinancialSnapshot,
    Movement,
    MovementKind,
    OptionAction,
    OptionType,
    TickerCurrencySnapshot,
    TradeSide,
)
from folio_engine.money import to_decimal
from folio_engine.store import AccountCheckpoint, Snapshot

logger = logging.getLogger(__name__)


def _enum(enum_type: Any, value: Optional[str]) -> Any:
    return enum_type(value) if value is not None else None


def movement_from_row(row: BrokerMovement) -> Movement:
    return Movement(
        account_id=row.account_id,
        sequence=row.sequence,
        timestamp=row.timestamp,
        kind=MovementKind(row.kind),
        currency=row.currency,
        ticker=row.ticker,
        quantity=to_decimal(row.quantity),
        price=to_decimal(row.price),
        commission=to_decimal(row.commission),
        fee=to_decimal(row.fee),
        amount=to_decimal(row.amount),
        side=_enum(TradeSide, row.side),
        option_action=_enum(OptionAction, row.option_action),
        option_type=_enum(OptionType, row.option_type),
        strike=to_decimal(row.strike) if row.strike is not None else None,
        expiration=row.expiration,
        multiplier=to_decimal(row.multiplier) if row.multiplier is not None else None,
        from_currency=row.from_currency,
        from_amount=to_decimal(row.from_amount),
    )


def movement_values(movement: Movement) -> dict[str, Any]:
    values = dataclasses.asdict(movement)
    for key, value in values.items():
        if isinstance(value, Enum):
            values[key] = value.value
    return values


class SqlMovementStore:
    """Movement store backed by the service database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def add_movements(self, movements: Iterable[Movement]) -> int:
        """Insert or replace movements keyed by (account, sequence)."""

        count = 0
        async with self._session_factory() as session:
            for movement in movements:
                await _upsert(
                    session,
                    BrokerMovement,
                    {"account_id": movement.account_id, "sequence": movement.sequence},
                    movement_values(movement),
                )
                count += 1
            await session.commit()
        return count

    async def add_price(self, ticker: str, currency: str, on: Any, close: Decimal) -> None:
        async with self._session_factory() as session:
            await _upsert(
                session,
                DailyBar,
                {"symbol": ticker, "currency": currency, "date": on},
                {"close": close},
            )
            await session.commit()

    async def account_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(BrokerMovement.account_id).distinct().order_by(BrokerMovement.account_id)
            )
            return list(result.scalars().all())

    async def fetch_movements(self, account_id: str, after_sequence: int, limit: int) -> Sequence[Movement]:
        async with self._session_factory() as session:
            stmt = (
                select(BrokerMovement)
                .where(BrokerMovement.account_id == account_id, BrokerMovement.sequence > after_sequence)
                .order_by(BrokerMovement.sequence)
                .limit(limit)
            )
            rows = (await session.execute(stmt)).scalars().all()
        return [movement_from_row(row) for row in rows]

    async def count_movements(self, account_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(BrokerMovement).where(BrokerMovement.account_id == account_id)
            )
            return int(result.scalar_one())

    async def fetch_current_price(self, ticker: str, currency: str) -> Optional[Decimal]:
        async with self._session_factory() as session:
            stmt = (
                select(DailyBar.close)
                .where(DailyBar.symbol == ticker, DailyBar.currency == currency)
                .order_by(DailyBar.date.desc())
                .limit(1)
            )
            close = (await session.execute(stmt)).scalar_one_or_none()
        return to_decimal(close) if close is not None else None

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        values = dataclasses.asdict(snapshot)
        if isinstance(snapshot, TickerCurrencySnapshot):
            model: Any = TickerSnapshot
            key = {k: values[k] for k in ("account_id", "ticker", "currency", "date")}
        else:
            model = FinancialSnapshot
            key = {k: values[k] for k in ("account_id", "currency", "date")}
        async with self._session_factory() as session:
            await _upsert(session, model, key, values)
            await session.commit()

    async def persist_operation(self, operation: AutoImportOperation) -> None:
        values = dataclasses.asdict(operation)
        key = {k: values[k] for k in ("account_id", "ticker", "opening_sequence")}
        async with self._session_factory() as session:
            await _upsert(session, Operation, key, values)
            await session.commit()

    async def load_checkpoint(self, account_id: str) -> Optional[AccountCheckpoint]:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(ProcessingCheckpoint).where(ProcessingCheckpoint.account_id == account_id)
                )
            ).scalar_one_or_none()
        if row is None:
            return None
        return AccountCheckpoint(
            account_id=account_id,
            last_sequence=row.last_sequence,
            processed=row.processed,
            state=row.state,
        )

    async def save_checkpoint(self, checkpoint: AccountCheckpoint) -> None:
        async with self._session_factory() as session:
            await _upsert(
                session,
                ProcessingCheckpoint,
                {"account_id": checkpoint.account_id},
                {
                    "last_sequence": checkpoint.last_sequence,
                    "processed": checkpoint.processed,
                    "state": checkpoint.state,
                    "updated_at": datetime.utcnow(),
                },
            )
            await session.commit()

    async def clear_checkpoint(self, account_id: str) -> None:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(ProcessingCheckpoint).where(ProcessingCheckpoint.account_id == account_id)
                )
            ).scalar_one_or_none()
            if row is not None:
                await session.delete(row)
                await session.commit()


async def _upsert(session: AsyncSession, model: Any, key: dict[str, Any], values: dict[str, Any]) -> None:
    stmt = select(model)
    for column, value in key.items():
        stmt = stmt.where(getattr(model, column) == value)
    row = (await session.execute(stmt)).scalar_one_or_none()
    if row is None:
        session.add(model(**{**key, **values}))
        return
    for column, value in values.items():
        setattr(row, column, value)


async def list_snapshots(
    session: AsyncSession, account_id: str, currency: Optional[str] = None
) -> list[BrokerFinancialSnapshot]:
    stmt = select(FinancialSnapshot).where(FinancialSnapshot.account_id == account_id)
    if currency:
        stmt = stmt.where(FinancialSnapshot.currency == currency)
    rows = (await session.execute(stmt.order_by(FinancialSnapshot.date, FinancialSnapshot.currency))).scalars().all()
    return [_to_dataclass(BrokerFinancialSnapshot, row) for row in rows]


async def list_ticker_snapshots(session: AsyncSession, account_id: str, ticker: str) -> list[TickerCurrencySnapshot]:
    stmt = (
        select(TickerSnapshot)
        .where(TickerSnapshot.account_id == account_id, TickerSnapshot.ticker == ticker)
        .order_by(TickerSnapshot.date, TickerSnapshot.currency)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return [_to_dataclass(TickerCurrencySnapshot, row) for row in rows]


async def list_operations(
    session: AsyncSession, account_id: str, *, open_only: bool = False
) -> list[AutoImportOperation]:
    stmt = select(Operation).where(Operation.account_id == account_id)
    if open_only:
        stmt = stmt.where(Operation.is_open.is_(True))
    rows = (await session.execute(stmt.order_by(Operation.opening_sequence))).scalars().all()
    return [_to_dataclass(AutoImportOperation, row) for row in rows]


def _to_dataclass(cls: Any, row: Any) -> Any:
    return cls(**{item.name: getattr(row, item.name) for item in dataclasses.fields(cls)})


__all__ = [
    "SqlMovementStore",
    "movement_from_row",
    "movement_values",
    "list_snapshots",
    "list_ticker_snapshots",
    "list_operations",
]
