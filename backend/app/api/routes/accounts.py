"""Account snapshot, operation and recompute endpoints."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies.store import get_coordinator
from app.db.session import get_db
from app.schemas import (
    AccountRunSchema,
    AutoImportOperationSchema,
    BrokerFinancialSnapshotSchema,
    TickerCurrencySnapshotSchema,
)
from app.services import repository
from folio_engine import ChunkedProcessingCoordinator, RunStatus

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/{account_id}/recompute", response_model=AccountRunSchema)
async def recompute_account(
    account_id: str,
    coordinator: ChunkedProcessingCoordinator = Depends(get_coordinator),
) -> AccountRunSchema:
    result = await coordinator.recompute(account_id)
    if result.status is RunStatus.FAILED:
        logger.warning("Recompute of %s failed: %s", account_id, result.error)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=result.error)
    return AccountRunSchema(
        account_id=result.account_id,
        status=result.status.value,
        processed=result.processed,
        last_sequence=result.last_sequence,
        error=result.error,
        inconsistent_tickers=result.inconsistent_tickers,
    )


@router.get("/{account_id}/snapshots", response_model=list[BrokerFinancialSnapshotSchema])
async def get_snapshots(
    account_id: str,
    currency: Optional[str] = Query(default=None, min_length=3, max_length=3),
    session: AsyncSession = Depends(get_db),
) -> list[BrokerFinancialSnapshotSchema]:
    snapshots = await repository.list_snapshots(session, account_id, currency)
    return [BrokerFinancialSnapshotSchema.model_validate(item) for item in snapshots]


@router.get("/{account_id}/tickers/{ticker}/snapshots", response_model=list[TickerCurrencySnapshotSchema])
async def get_ticker_snapshots(
    account_id: str,
    ticker: str,
    session: AsyncSession = Depends(get_db),
) -> list[TickerCurrencySnapshotSchema]:
    snapshots = await repository.list_ticker_snapshots(session, account_id, ticker.upper())
    return [TickerCurrencySnapshotSchema.model_validate(item) for item in snapshots]


@router.get("/{account_id}/operations", response_model=list[AutoImportOperationSchema])
async def get_operations(
    account_id: str,
    open_only: bool = Query(default=False),
    session: AsyncSession = Depends(get_db),
) -> list[AutoImportOperationSchema]:
    operations = await repository.list_operations(session, account_id, open_only=open_only)
    return [AutoImportOperationSchema.model_validate(item) for item in operations]


__all__ = ["router"]
