"""Chunked, resumable processing of many accounts.

Accounts run concurrently, bounded by ``max_concurrency``; each account is a
single task that walks its movements in ``chunk_size`` batches so memory
stays proportional to the chunk. The only suspension points are store I/O.
After every chunk the emitted records are persisted, the checkpoint saved
and the progress callback invoked. Cancellation is checked before an account
starts and between chunks, never in the middle of a movement.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Union

from opentelemetry import metrics, trace
from opentelemetry.metrics import Meter

from .config import EngineSettings, get_engine_settings
from .errors import CancellationRequested, EngineError, PriceUnavailable
from .models import Movement
from .pipeline import AccountState, ProcessingResult
from .pricing import PriceBook
from .store import AccountCheckpoint, MovementStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
METER_NAME = "folio_engine"

ProgressCallback = Callable[[str, int, int], Union[None, Awaitable[None]]]


class CancellationToken:
    """Cooperative cancellation flag shared by all account tasks of a run."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, account_id: Optional[str] = None) -> None:
        if self._cancelled:
            raise CancellationRequested(account_id)


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class AccountRunResult:
    account_id: str
    status: RunStatus
    processed: int = 0
    last_sequence: int = 0
    error: Optional[Dict[str, Any]] = None
    inconsistent_tickers: List[str] = field(default_factory=list)


@dataclass
class ProcessingReport:
    results: List[AccountRunResult] = field(default_factory=list)

    def for_account(self, account_id: str) -> AccountRunResult:
        for result in self.results:
            if result.account_id == account_id:
                return result
        raise KeyError(account_id)

    @property
    def failed(self) -> List[AccountRunResult]:
        return [r for r in self.results if r.status is RunStatus.FAILED]

    @property
    def cancelled(self) -> List[AccountRunResult]:
        return [r for r in self.results if r.status is RunStatus.CANCELLED]

    @property
    def ok(self) -> bool:
        return all(r.status is RunStatus.COMPLETED for r in self.results)


class ChunkedProcessingCoordinator:
    def __init__(
        self,
        store: MovementStore,
        settings: Optional[EngineSettings] = None,
        progress: Optional[ProgressCallback] = None,
        meter: Optional[Meter] = None,
    ):
        self.store = store
        self.settings = settings or get_engine_settings()
        self.progress = progress
        meter = meter or metrics.get_meter(METER_NAME)
        self._movements_counter = meter.create_counter(
            "folio_engine.movements_processed", unit="1", description="Movements folded into account state"
        )
        self._runs_counter = meter.create_counter(
            "folio_engine.account_runs", unit="1", description="Account runs by final status"
        )
        self._unbalanced_counter = meter.create_counter(
            "folio_engine.unbalanced_operations", unit="1", description="Movements that left an operation unbalanced"
        )

    async def run(
        self,
        account_ids: Iterable[str],
        cancel: Optional[CancellationToken] = None,
    ) -> ProcessingReport:
        """Process every account and report per-account outcomes."""

        cancel = cancel or CancellationToken()
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        ordered = list(dict.fromkeys(account_ids))
        results = await asyncio.gather(
            *(self._guarded(account_id, cancel, semaphore) for account_id in ordered)
        )
        report = ProcessingReport(results=list(results))
        logger.info(
            "Processed %d accounts (%d failed, %d cancelled)",
            len(report.results),
            len(report.failed),
            len(report.cancelled),
        )
        return report

    async def recompute(
        self,
        account_id: str,
        cancel: Optional[CancellationToken] = None,
    ) -> AccountRunResult:
        """Drop the checkpoint and rebuild the account from its first movement."""

        await self.store.clear_checkpoint(account_id)
        report = await self.run([account_id], cancel=cancel)
        return report.for_account(account_id)

    async def _guarded(
        self,
        account_id: str,
        cancel: CancellationToken,
        semaphore: asyncio.Semaphore,
    ) -> AccountRunResult:
        async with semaphore:
            return await self._run_account(account_id, cancel)

    async def _run_account(self, account_id: str, cancel: CancellationToken) -> AccountRunResult:
        result = AccountRunResult(account_id=account_id, status=RunStatus.COMPLETED)
        with tracer.start_as_current_span("folio_engine.account_run") as span:
            span.set_attribute("folio_engine.account_id", account_id)
            try:
                cancel.raise_if_cancelled(account_id)
                state = await self._resume(account_id)
                result.processed = state.processed
                result.last_sequence = state.last_sequence
                total = await self.store.count_movements(account_id)
                prices = PriceBook()
                while True:
                    cancel.raise_if_cancelled(account_id)
                    chunk = await self.store.fetch_movements(
                        account_id, state.last_sequence, self.settings.chunk_size
                    )
                    if not chunk:
                        break
                    await self._resolve_prices(chunk, prices)
                    output = state.apply_chunk(chunk, prices)
                    await self._persist(output)
                    self._movements_counter.add(len(chunk))
                    if output.unbalanced:
                        self._unbalanced_counter.add(len(output.unbalanced))
                    for error in output.unbalanced:
                        if error.ticker and error.ticker not in result.inconsistent_tickers:
                            result.inconsistent_tickers.append(error.ticker)
                    await self.store.save_checkpoint(
                        AccountCheckpoint(account_id, state.last_sequence, state.processed, state)
                    )
                    result.processed = state.processed
                    result.last_sequence = state.last_sequence
                    await self._report_progress(account_id, state.processed, max(total, state.processed))
                    if len(chunk) < self.settings.chunk_size:
                        break
            except CancellationRequested:
                result.status = RunStatus.CANCELLED
                logger.info("Processing of %s cancelled after %d movements", account_id, result.processed)
            except EngineError as exc:
                result.status = RunStatus.FAILED
                result.error = exc.as_dict()
                logger.exception("Processing of %s failed: %s", account_id, exc)
            except Exception as exc:
                result.status = RunStatus.FAILED
                result.error = {"error": type(exc).__name__, "message": str(exc)}
                logger.exception("Processing of %s failed unexpectedly", account_id)
            span.set_attribute("folio_engine.processed", result.processed)
            span.set_attribute("folio_engine.status", result.status.value)
        self._runs_counter.add(1, {"status": result.status.value})

        if result.status is RunStatus.COMPLETED:
            logger.info(
                "Account %s processed %d movements up to sequence %d",
                account_id,
                result.processed,
                result.last_sequence,
            )
        return result

    async def _resume(self, account_id: str) -> AccountState:
        checkpoint = await self.store.load_checkpoint(account_id)
        if checkpoint is not None and checkpoint.state is not None:
            logger.debug("Resuming %s after sequence %d", account_id, checkpoint.last_sequence)
            return checkpoint.state
        if checkpoint is not None and checkpoint.last_sequence:
            logger.info(
                "Checkpoint for %s has no accumulator state; replaying from the first movement",
                account_id,
            )
        return AccountState(account_id, self.settings)

    async def _resolve_prices(self, chunk: Sequence[Movement], prices: PriceBook) -> None:
        for movement in chunk:
            if not movement.ticker:
                continue
            key = (movement.ticker, movement.currency)
            if key in prices:
                continue
            try:
                price = await self.store.fetch_current_price(*key)
            except PriceUnavailable:
                price = None
            if price is None:
                logger.warning("No current price for %s in %s", *key)
            prices.set(movement.ticker, movement.currency, price)

    async def _persist(self, output: ProcessingResult) -> None:
        for snapshot in output.snapshot_list:
            await self.store.persist_snapshot(snapshot)
        for ticker_snapshot in output.ticker_snapshot_list:
            await self.store.persist_snapshot(ticker_snapshot)
        for operation in output.operation_list:
            await self.store.persist_operation(operation)

    async def _report_progress(self, account_id: str, processed: int, total: int) -> None:
        if self.progress is None:
            return
        outcome = self.progress(account_id, processed, total)
        if inspect.isawaitable(outcome):
            await outcome


__all__ = [
    "CancellationToken",
    "RunStatus",
    "AccountRunResult",
    "ProcessingReport",
    "ChunkedProcessingCoordinator",
    "ProgressCallback",
]
