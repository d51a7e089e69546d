"""Configuration helpers for the snapshot engine."""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CHUNK_SIZE = 2000
DEFAULT_OPTION_MULTIPLIER = Decimal("100")


class EngineSettings(BaseSettings):
    """Tuning knobs for chunked snapshot processing."""

    model_config = SettingsConfigDict(env_prefix="FOLIO_ENGINE_", env_file=".env", extra="ignore")

    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        gt=0,
        description="Movements fetched and applied per batch.",
    )
    max_concurrency: int = Field(default=2, gt=0, description="Accounts processed in parallel.")
    default_option_multiplier: Decimal = Field(default=DEFAULT_OPTION_MULTIPLIER, gt=0)
    percentage_places: int = Field(default=4, ge=0, le=10)
    decimal_precision: int = Field(default=28, ge=10)


@lru_cache()
def get_engine_settings() -> EngineSettings:
    """Return the engine settings resolved from the environment."""

    return EngineSettings()


__all__ = ["EngineSettings", "get_engine_settings", "DEFAULT_CHUNK_SIZE", "DEFAULT_OPTION_MULTIPLIER"]
