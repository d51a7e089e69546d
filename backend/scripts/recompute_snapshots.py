"""Rebuild daily snapshots and operations for broker accounts."""

from __future__ import annotations

import argparse
import asyncio

from app.config import get_settings
from app.core.logging import setup_logging
from app.core.telemetry import engine_meter
from app.db.init import init_database
from app.db.session import _session_factory
from app.services.repository import SqlMovementStore
from folio_engine import ChunkedProcessingCoordinator, RunStatus


def _print_progress(account_id: str, processed: int, total: int) -> None:
    print(f"{account_id}: {processed}/{total} movements")


async def _run(account_ids: list[str], resume: bool, chunk_size: int | None) -> int:
    settings = get_settings()
    engine_settings = settings.engine
    if chunk_size:
        engine_settings = engine_settings.model_copy(update={"chunk_size": chunk_size})

    await init_database()
    store = SqlMovementStore(_session_factory)
    if not account_ids:
        account_ids = await store.account_ids()
    if not resume:
        for account_id in account_ids:
            await store.clear_checkpoint(account_id)

    coordinator = ChunkedProcessingCoordinator(
        store, engine_settings, progress=_print_progress, meter=engine_meter()
    )
    report = await coordinator.run(account_ids)
    for result in report.results:
        line = f"{result.account_id}: {result.status.value} ({result.processed} movements)"
        if result.inconsistent_tickers:
            line += f" inconsistent: {', '.join(result.inconsistent_tickers)}"
        if result.status is RunStatus.FAILED and result.error:
            line += f" error: {result.error.get('message')}"
        print(line)
    return 0 if report.ok else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute broker snapshots and operations")
    parser.add_argument("--account", action="append", default=[], help="Account id (repeatable, default: all)")
    parser.add_argument("--resume", action="store_true", help="Continue from saved checkpoints")
    parser.add_argument("--chunk-size", type=int, default=None)
    args = parser.parse_args()
    setup_logging(get_settings().log_level)
    raise SystemExit(asyncio.run(_run(args.account, args.resume, args.chunk_size)))


if __name__ == "__main__":
    main()
