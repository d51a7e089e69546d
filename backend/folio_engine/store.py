"""Storage interface consumed by the coordinator, plus an in-memory version."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from .errors import PriceUnavailable
from .models import AutoImportOperation, BrokerFinancialSnapshot, Movement, TickerCurrencySnapshot
from .money import to_decimal
from .pipeline import AccountState

Snapshot = Union[BrokerFinancialSnapshot, TickerCurrencySnapshot]


@dataclass
class AccountCheckpoint:
    """Resume point for an account.

    ``state`` is only available when the store can keep the in-memory
    accumulators; without it processing restarts from the first movement.
    """

    account_id: str
    last_sequence: int = 0
    processed: int = 0
    state: Optional[AccountState] = None


class MovementStore(Protocol):
    async def fetch_movements(self, account_id: str, after_sequence: int, limit: int) -> Sequence[Movement]:
        ...

    async def count_movements(self, account_id: str) -> int:
        ...

    async def fetch_current_price(self, ticker: str, currency: str) -> Optional[Decimal]:
        ...

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        ...

    async def persist_operation(self, operation: AutoImportOperation) -> None:
        ...

    async def load_checkpoint(self, account_id: str) -> Optional[AccountCheckpoint]:
        ...

    async def save_checkpoint(self, checkpoint: AccountCheckpoint) -> None:
        ...

    async def clear_checkpoint(self, account_id: str) -> None:
        ...


class InMemoryMovementStore:
    """Dictionary backed store for tests and scripts."""

    def __init__(
        self,
        movements: Iterable[Movement] = (),
        prices: Optional[Mapping[Union[str, Tuple[str, str]], Union[Decimal, str, int]]] = None,
    ):
        self.movements: Dict[str, List[Movement]] = {}
        self.prices: Dict[Union[str, Tuple[str, str]], Decimal] = {
            key: to_decimal(value) for key, value in (prices or {}).items()
        }
        self.snapshots: Dict[tuple, BrokerFinancialSnapshot] = {}
        self.ticker_snapshots: Dict[tuple, TickerCurrencySnapshot] = {}
        self.operations: Dict[tuple, AutoImportOperation] = {}
        self.checkpoints: Dict[str, AccountCheckpoint] = {}
        self.price_requests = 0
        for movement in movements:
            self.add(movement)

    def add(self, movement: Movement) -> None:
        bucket = self.movements.setdefault(movement.account_id, [])
        bucket.append(movement)
        bucket.sort(key=lambda m: (m.timestamp, m.sequence))

    async def fetch_movements(self, account_id: str, after_sequence: int, limit: int) -> Sequence[Movement]:
        pending = [m for m in self.movements.get(account_id, []) if m.sequence > after_sequence]
        return pending[:limit]

    async def count_movements(self, account_id: str) -> int:
        return len(self.movements.get(account_id, []))

    async def fetch_current_price(self, ticker: str, currency: str) -> Optional[Decimal]:
        self.price_requests += 1
        for key in ((ticker, currency), ticker):
            if key in self.prices:
                return self.prices[key]
        raise PriceUnavailable(f"No price for {ticker} in {currency}")

    async def persist_snapshot(self, snapshot: Snapshot) -> None:
        if isinstance(snapshot, TickerCurrencySnapshot):
            self.ticker_snapshots[snapshot.natural_key] = snapshot
        else:
            self.snapshots[snapshot.natural_key] = snapshot

    async def persist_operation(self, operation: AutoImportOperation) -> None:
        self.operations[operation.natural_key] = operation

    async def load_checkpoint(self, account_id: str) -> Optional[AccountCheckpoint]:
        checkpoint = self.checkpoints.get(account_id)
        if checkpoint is None:
            return None
        state = checkpoint.state.copy() if checkpoint.state is not None else None
        return AccountCheckpoint(account_id, checkpoint.last_sequence, checkpoint.processed, state)

    async def save_checkpoint(self, checkpoint: AccountCheckpoint) -> None:
        state = checkpoint.state.copy() if checkpoint.state is not None else None
        self.checkpoints[checkpoint.account_id] = AccountCheckpoint(
            checkpoint.account_id, checkpoint.last_sequence, checkpoint.processed, state
        )

    async def clear_checkpoint(self, account_id: str) -> None:
        self.checkpoints.pop(account_id, None)

    def snapshots_for(self, account_id: str, currency: Optional[str] = None) -> List[BrokerFinancialSnapshot]:
        rows = [
            s for s in self.snapshots.values()
            if s.account_id == account_id and (currency is None or s.currency == currency)
        ]
        return sorted(rows, key=lambda s: (s.date, s.currency))


__all__ = ["AccountCheckpoint", "MovementStore", "InMemoryMovementStore", "Snapshot"]
