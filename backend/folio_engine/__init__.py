"""Financial snapshot and operation aggregation engine."""

from .config import EngineSettings, get_engine_settings
from .coordinator import (
    AccountRunResult,
    CancellationToken,
    ChunkedProcessingCoordinator,
    ProcessingReport,
    RunStatus,
)
from .errors import (
    CancellationRequested,
    EngineError,
    InvalidMovementError,
    PriceUnavailable,
    UnbalancedOperationError,
)
from .financials import FinancialTotals, apply_movement
from .ledger import PositionDelta, PositionLedger
from .models import (
    AutoImportOperation,
    BrokerFinancialSnapshot,
    Movement,
    MovementKind,
    OptionAction,
    OptionType,
    TickerCurrencySnapshot,
    TradeSide,
)
from .operations import OperationConsolidator
from .pipeline import AccountState, ProcessingResult, process_movements
from .pricing import CachingPriceSource, InMemoryPriceSource, PriceBook
from .snapshots import SnapshotBuilder
from .store import AccountCheckpoint, InMemoryMovementStore, MovementStore
from .ticker_snapshots import TickerSnapshotBuilder
from .validation import validate_movement, validate_snapshot

__all__ = [
    "AccountCheckpoint",
    "AccountRunResult",
    "AccountState",
    "AutoImportOperation",
    "BrokerFinancialSnapshot",
    "CachingPriceSource",
    "CancellationRequested",
    "CancellationToken",
    "ChunkedProcessingCoordinator",
    "EngineError",
    "EngineSettings",
    "FinancialTotals",
    "InMemoryMovementStore",
    "InMemoryPriceSource",
    "InvalidMovementError",
    "Movement",
    "MovementKind",
    "MovementStore",
    "OperationConsolidator",
    "OptionAction",
    "OptionType",
    "PositionDelta",
    "PositionLedger",
    "PriceBook",
    "PriceUnavailable",
    "ProcessingReport",
    "ProcessingResult",
    "RunStatus",
    "SnapshotBuilder",
    "TickerCurrencySnapshot",
    "TickerSnapshotBuilder",
    "TradeSide",
    "UnbalancedOperationError",
    "apply_movement",
    "get_engine_settings",
    "process_movements",
    "validate_movement",
    "validate_snapshot",
]
