"""Database model exports."""

from .movements import BrokerMovement, ProcessingCheckpoint
from .prices import DailyBar
from .snapshots import FinancialSnapshot, Operation, TickerSnapshot

__all__ = [
    "BrokerMovement",
    "DailyBar",
    "ProcessingCheckpoint",
    "FinancialSnapshot",
    "TickerSnapshot",
    "Operation",
]
