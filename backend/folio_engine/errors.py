"""Error taxonomy raised by the snapshot and operation engine."""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for engine failures that carry movement context."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in sorted(self.context.items()))
        return f"{self.message} ({details})"

    def as_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **{k: str(v) for k, v in self.context.items()}}


class InvalidMovementError(EngineError):
    """Malformed, out-of-order or oversell movement. Fatal for the account run."""

    def __init__(
        self,
        message: str,
        *,
        account_id: str | None = None,
        sequence: int | None = None,
        kind: str | None = None,
    ) -> None:
        super().__init__(message, account_id=account_id, sequence=sequence, kind=kind)
        self.account_id = account_id
        self.sequence = sequence
        self.kind = kind


class UnbalancedOperationError(EngineError):
    """A closing movement does not match any tracked exposure on the ticker."""

    def __init__(
        self,
        message: str,
        *,
        account_id: str | None = None,
        ticker: str | None = None,
        sequence: int | None = None,
    ) -> None:
        super().__init__(message, account_id=account_id, ticker=ticker, sequence=sequence)
        self.account_id = account_id
        self.ticker = ticker
        self.sequence = sequence


class CancellationRequested(EngineError):
    """Cooperative stop; work persisted before the signal remains valid."""

    def __init__(self, account_id: str | None = None) -> None:
        super().__init__("Processing cancelled", account_id=account_id)
        self.account_id = account_id


class PriceUnavailable(LookupError):
    """Raised by price sources when no quote exists for a ticker."""


__all__ = [
    "EngineError",
    "InvalidMovementError",
    "UnbalancedOperationError",
    "CancellationRequested",
    "PriceUnavailable",
]
