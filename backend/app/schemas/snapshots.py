"""Pydantic schemas for snapshots, operations and recompute runs."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class BrokerFinancialSnapshotSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    currency: str = Field(..., examples=["USD"])
    date: date
    movement_counter: int
    realized_gains: Decimal
    realized_percentage: Decimal
    unrealized_gains: Decimal
    unrealized_gains_percentage: Decimal
    invested: Decimal
    commissions: Decimal
    fees: Decimal
    deposited: Decimal
    withdrawn: Decimal
    dividends_received: Decimal
    options_income: Decimal
    other_income: Decimal
    open_trades: bool
    net_cash_flow: Decimal
    cash: Decimal


class TickerCurrencySnapshotSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    ticker: str = Field(..., examples=["SPY"])
    currency: str
    date: date
    movement_counter: int
    quantity: Decimal
    average_cost: Decimal
    cost_basis: Decimal
    realized: Decimal
    unrealized: Decimal
    unrealized_percentage: Decimal
    dividends: Decimal
    dividend_taxes: Decimal
    options: Decimal
    commissions: Decimal
    fees: Decimal
    latest_price: Optional[Decimal] = None
    open_trades: bool


class AutoImportOperationSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    ticker: str
    currency: str
    opening_sequence: int
    open_date: datetime
    close_date: Optional[datetime] = None
    is_open: bool
    realized: Decimal
    realized_today: Decimal
    commissions: Decimal
    fees: Decimal
    premium: Decimal
    dividends: Decimal
    dividend_taxes: Decimal
    capital_deployed: Decimal
    capital_deployed_today: Decimal
    performance: Decimal
    is_consistent: bool


class AccountRunSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    status: str
    processed: int
    last_sequence: int
    error: Optional[dict[str, Any]] = None
    inconsistent_tickers: list[str] = Field(default_factory=list)


__all__ = [
    "BrokerFinancialSnapshotSchema",
    "TickerCurrencySnapshotSchema",
    "AutoImportOperationSchema",
    "AccountRunSchema",
]
