"""Daily broker, ticker snapshot and operation models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class FinancialSnapshot(Base):
    __tablename__ = "broker_financial_snapshot"
    __table_args__ = (
        UniqueConstraint("account_id", "currency", "date", name="uq_financial_snapshot_account_currency_date"),
        Index("ix_financial_snapshot_account_date", "account_id", "date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64))
    currency: Mapped[str] = mapped_column(String(3))
    date: Mapped[date] = mapped_column(Date)
    movement_counter: Mapped[int] = mapped_column(Integer)
    realized_gains: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    realized_percentage: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    unrealized_gains: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    unrealized_gains_percentage: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    invested: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    commissions: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    fees: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    deposited: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    withdrawn: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    dividends_received: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    options_income: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    other_income: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    open_trades: Mapped[bool] = mapped_column(Boolean, default=False)
    net_cash_flow: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    cash: Mapped[Decimal] = mapped_column(Numeric(18, 6))


class TickerSnapshot(Base):
    __tablename__ = "ticker_currency_snapshot"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "ticker", "currency", "date", name="uq_ticker_snapshot_account_ticker_currency_date"
        ),
        Index("ix_ticker_snapshot_account_ticker", "account_id", "ticker"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64))
    ticker: Mapped[str] = mapped_column(String(20))
    currency: Mapped[str] = mapped_column(String(3))
    date: Mapped[date] = mapped_column(Date)
    movement_counter: Mapped[int] = mapped_column(Integer)
    quantity: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    average_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    cost_basis: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    realized: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    unrealized: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    unrealized_percentage: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    dividends: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    dividend_taxes: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    options: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    commissions: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    fees: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    latest_price: Mapped[Decimal | None] = mapped_column(Numeric(18, 6), nullable=True)
    open_trades: Mapped[bool] = mapped_column(Boolean, default=False)


class Operation(Base):
    __tablename__ = "auto_import_operation"
    __table_args__ = (
        UniqueConstraint("account_id", "ticker", "opening_sequence", name="uq_operation_account_ticker_sequence"),
        Index("ix_operation_account_open", "account_id", "is_open"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64))
    ticker: Mapped[str] = mapped_column(String(20))
    currency: Mapped[str] = mapped_column(String(3))
    opening_sequence: Mapped[int] = mapped_column(Integer)
    open_date: Mapped[datetime] = mapped_column(DateTime(timezone=False))
    close_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    is_open: Mapped[bool] = mapped_column(Boolean, default=True)
    realized: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    realized_today: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    commissions: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    fees: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    premium: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    dividends: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    dividend_taxes: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    capital_deployed: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    capital_deployed_today: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    performance: Mapped[Decimal] = mapped_column(Numeric(18, 6))
    is_consistent: Mapped[bool] = mapped_column(Boolean, default=True)


__all__ = ["FinancialSnapshot", "TickerSnapshot", "Operation"]
