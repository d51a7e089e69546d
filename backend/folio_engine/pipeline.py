"""Synchronous fold of an account's movements into snapshots and operations."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from decimal import localcontext
from typing import Dict, Iterable, List, Optional, Tuple

from .config import EngineSettings
from .errors import InvalidMovementError, UnbalancedOperationError
from .ledger import PositionLedger
from .models import AutoImportOperation, BrokerFinancialSnapshot, Movement, TickerCurrencySnapshot
from .operations import OperationConsolidator
from .pricing import PriceInput, PriceLookup, as_price_lookup
from .snapshots import SnapshotBuilder
from .ticker_snapshots import TickerSnapshotBuilder
from .validation import validate_movement, validate_snapshot

logger = logging.getLogger(__name__)


@dataclass
class ProcessingResult:
    """Records emitted by a pass, keyed by natural key (later emissions win)."""

    snapshots: Dict[Tuple, BrokerFinancialSnapshot] = field(default_factory=dict)
    ticker_snapshots: Dict[Tuple, TickerCurrencySnapshot] = field(default_factory=dict)
    operations: Dict[Tuple, AutoImportOperation] = field(default_factory=dict)
    unbalanced: List[UnbalancedOperationError] = field(default_factory=list)
    processed: int = 0

    def add_snapshots(self, snapshots: Iterable[BrokerFinancialSnapshot]) -> None:
        for snapshot in snapshots:
            problems = validate_snapshot(snapshot)
            if problems:
                logger.warning("Snapshot %s failed validation: %s", snapshot.natural_key, "; ".join(problems))
            self.snapshots[snapshot.natural_key] = snapshot

    def add_ticker_snapshots(self, snapshots: Iterable[TickerCurrencySnapshot]) -> None:
        for snapshot in snapshots:
            self.ticker_snapshots[snapshot.natural_key] = snapshot

    def merge(self, other: "ProcessingResult") -> None:
        self.snapshots.update(other.snapshots)
        self.ticker_snapshots.update(other.ticker_snapshots)
        self.operations.update(other.operations)
        self.unbalanced.extend(other.unbalanced)
        self.processed += other.processed

    @property
    def snapshot_list(self) -> List[BrokerFinancialSnapshot]:
        return sorted(self.snapshots.values(), key=lambda s: (s.date, s.currency))

    @property
    def ticker_snapshot_list(self) -> List[TickerCurrencySnapshot]:
        return sorted(self.ticker_snapshots.values(), key=lambda s: (s.date, s.ticker, s.currency))

    @property
    def operation_list(self) -> List[AutoImportOperation]:
        return sorted(self.operations.values(), key=lambda o: (o.opening_sequence, o.ticker))


class AccountState:
    """Everything needed to continue processing an account after a chunk."""

    def __init__(self, account_id: str, settings: Optional[EngineSettings] = None):
        settings = settings or EngineSettings()
        self.account_id = account_id
        self.settings = settings
        self.ledger = PositionLedger(account_id, default_multiplier=settings.default_option_multiplier)
        places = settings.percentage_places
        self.snapshots = SnapshotBuilder(account_id, self.ledger, percentage_places=places)
        self.tickers = TickerSnapshotBuilder(account_id, self.ledger, percentage_places=places)
        self.operations = OperationConsolidator(
            account_id,
            default_multiplier=settings.default_option_multiplier,
            percentage_places=places,
        )
        self.last_movement: Optional[Movement] = None
        self.processed = 0

    @property
    def last_sequence(self) -> int:
        return self.last_movement.sequence if self.last_movement is not None else 0

    def copy(self) -> "AccountState":
        # One deepcopy keeps the builders pointing at the copied ledger.
        return copy.deepcopy(self)

    def apply(self, movement: Movement, prices: PriceLookup, result: ProcessingResult) -> None:
        """Apply one movement; raises ``InvalidMovementError`` before any ledger change."""

        if movement.account_id != self.account_id:
            raise InvalidMovementError(
                f"Movement belongs to account {movement.account_id}, expected {self.account_id}",
                account_id=movement.account_id,
                sequence=movement.sequence,
                kind=movement.kind.value,
            )
        validate_movement(movement, self.last_movement)

        result.add_snapshots(self.snapshots.roll(movement, prices))
        result.add_ticker_snapshots(self.tickers.roll(movement, prices))

        delta = self.ledger.apply(movement)
        self.snapshots.apply(movement, delta)
        self.tickers.apply(movement, delta)
        self.last_movement = movement
        self.processed += 1
        result.processed += 1

        try:
            operation = self.operations.apply(movement, delta, day=movement.day)
        except UnbalancedOperationError as exc:
            result.unbalanced.append(exc)
            operation = None
            for record in self.operations.operations():
                if record.ticker == movement.ticker:
                    result.operations[record.natural_key] = record
        if operation is not None:
            result.operations[operation.natural_key] = operation

    def apply_chunk(self, movements: Iterable[Movement], prices: PriceInput = None) -> ProcessingResult:
        """Apply movements in order and emit the "as of now" snapshots."""

        lookup = as_price_lookup(prices)
        result = ProcessingResult()
        with localcontext() as ctx:
            ctx.prec = self.settings.decimal_precision
            for movement in movements:
                self.apply(movement, lookup, result)
            result.add_snapshots(self.snapshots.finish(lookup))
            result.add_ticker_snapshots(self.tickers.finish(lookup))
        return result


def process_movements(
    movements: Iterable[Movement],
    prices: PriceInput = None,
    *,
    settings: Optional[EngineSettings] = None,
    state: Optional[AccountState] = None,
) -> ProcessingResult:
    """Fold an account's ordered movements into snapshots and operations.

    Pass ``state`` to continue from an earlier call; the state is updated in
    place.
    """

    movements = list(movements)
    if state is None:
        if not movements:
            return ProcessingResult()
        state = AccountState(movements[0].account_id, settings)
    return state.apply_chunk(movements, prices)


__all__ = ["AccountState", "ProcessingResult", "process_movements"]
