"""Pydantic schema exports."""

from .snapshots import (
    AccountRunSchema,
    AutoImportOperationSchema,
    BrokerFinancialSnapshotSchema,
    TickerCurrencySnapshotSchema,
)

__all__ = [
    "AccountRunSchema",
    "AutoImportOperationSchema",
    "BrokerFinancialSnapshotSchema",
    "TickerCurrencySnapshotSchema",
]
