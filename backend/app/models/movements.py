"""Broker movement and processing checkpoint models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Date, DateTime, Index, Integer, Numeric, PickleType, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class BrokerMovement(Base):
    __tablename__ = "broker_movement"
    __table_args__ = (
        UniqueConstraint("account_id", "sequence", name="uq_broker_movement_account_sequence"),
        Index("ix_broker_movement_account_timestamp", "account_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64))
    sequence: Mapped[int] = mapped_column(Integer)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    kind: Mapped[str] = mapped_column(String(20))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    ticker: Mapped[str | None] = mapped_column(String(20), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    commission: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    fee: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)
    side: Mapped[str | None] = mapped_column(String(4), nullable=True)
    option_action: Mapped[str | None] = mapped_column(String(16), nullable=True)
    option_type: Mapped[str | None] = mapped_column(String(4), nullable=True)
    strike: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    expiration: Mapped[date | None] = mapped_column(Date, nullable=True)
    multiplier: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    from_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    from_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), default=0)


class ProcessingCheckpoint(Base):
    __tablename__ = "processing_checkpoint"
    __table_args__ = (UniqueConstraint("account_id", name="uq_processing_checkpoint_account"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64))
    last_sequence: Mapped[int] = mapped_column(Integer, default=0)
    processed: Mapped[int] = mapped_column(Integer, default=0)
    # Pickled AccountState as of last_sequence.
    state: Mapped[Any] = mapped_column(PickleType, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), default=datetime.utcnow)


__all__ = ["BrokerMovement", "ProcessingCheckpoint"]
