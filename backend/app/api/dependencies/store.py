"""Dependencies that hand the engine its store and coordinator."""

from __future__ import annotations

from fastapi import Depends

from app.config import get_settings
from app.core.telemetry import engine_meter
from app.db.session import _session_factory
from app.services.repository import SqlMovementStore
from folio_engine import ChunkedProcessingCoordinator


def get_movement_store() -> SqlMovementStore:
    return SqlMovementStore(_session_factory)


def get_coordinator(store: SqlMovementStore = Depends(get_movement_store)) -> ChunkedProcessingCoordinator:
    return ChunkedProcessingCoordinator(store, get_settings().engine, meter=engine_meter())


__all__ = ["get_movement_store", "get_coordinator"]
