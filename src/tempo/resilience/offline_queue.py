"""Bounded FIFO queue of mutating operations that failed for connectivity reasons.

Operations are appended by ``ResilientServiceProxy`` once its retry budget is
spent on transient failures, and replayed oldest-first when the embedding
application signals that connectivity is back.

Capacity is bounded: appending to a full queue evicts the oldest entry.
Replay failures increment ``retry_count``; an entry that reaches
``max_replay_retries`` is dropped and logged as a terminal loss.

When an asyncpg pool is supplied the queue snapshots its entries into the
``state`` table after every mutation and ``restore()`` reloads them at
start-up.  Without a pool the queue lives in memory only.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from tempo.core.metrics import TempoMetrics
from tempo.core.state import state_get, state_set
from tempo.resilience.classifier import is_transient
from tempo.services.models import TaskCreate, TimeBlockCreate, TimeBlockUpdate

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_MAX_REPLAY_RETRIES = 3

# Pydantic payload types that may appear in queued call arguments.
_MODEL_TYPES: dict[str, type[BaseModel]] = {
    model.__name__: model for model in (TimeBlockCreate, TimeBlockUpdate, TaskCreate)
}

OperationRunner = Callable[["QueuedOperation"], Awaitable[Any]]


def encode_arg(value: Any) -> Any:
    """Encode a call argument into a JSON-safe structure."""
    if isinstance(value, BaseModel):
        name = type(value).__name__
        if name not in _MODEL_TYPES:
            raise TypeError(f"Cannot queue argument of unregistered model type {name}")
        return {"__model__": name, "data": value.model_dump(mode="json")}
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, dict):
        return {str(k): encode_arg(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_arg(v) for v in value]
    return value


def decode_arg(value: Any) -> Any:
    """Inverse of :func:`encode_arg`."""
    if isinstance(value, dict):
        if "__model__" in value and set(value) == {"__model__", "data"}:
            return _MODEL_TYPES[value["__model__"]].model_validate(value["data"])
        if set(value) == {"__datetime__"}:
            return datetime.fromisoformat(value["__datetime__"])
        return {k: decode_arg(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_arg(v) for v in value]
    return value


@dataclass
class QueuedOperation:
    """A mutating call waiting to be replayed."""

    service: str
    method: str
    args: list[Any] = field(default_factory=list)
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    retry_count: int = 0

    @property
    def name(self) -> str:
        return f"{self.service}.{self.method}"

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary."""
        return {
            "id": self.id,
            "service": self.service,
            "method": self.method,
            "args": encode_arg(list(self.args)),
            "kwargs": encode_arg(dict(self.kwargs)),
            "timestamp": self.timestamp.isoformat(),
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueuedOperation:
        """Reconstruct a QueuedOperation from a dictionary (e.g. from to_dict())."""
        return cls(
            id=str(data["id"]),
            service=data["service"],
            method=data["method"],
            args=decode_arg(list(data.get("args", []))),
            kwargs=decode_arg(dict(data.get("kwargs", {}))),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            retry_count=int(data.get("retry_count", 0)),
        )


@dataclass
class ReplayReport:
    """Outcome of one replay pass."""

    applied: list[str] = field(default_factory=list)
    retained: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def processed(self) -> int:
        return len(self.applied) + len(self.retained) + len(self.dropped)

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": list(self.applied),
            "retained": list(self.retained),
            "dropped": list(self.dropped),
            "skipped": self.skipped,
        }


class OfflineQueue:
    """Process-wide FIFO buffer of operations awaiting connectivity.

    Parameters
    ----------
    capacity:
        Maximum number of entries; the oldest is evicted on overflow.
    max_replay_retries:
        Failed replays after which an entry is dropped for good.
    pool:
        Optional asyncpg pool; enables persistence through the KV store.
    state_key:
        Key under which the snapshot is stored.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        max_replay_retries: int = DEFAULT_MAX_REPLAY_RETRIES,
        *,
        pool: Any = None,
        state_key: str = "offline_queue::default",
        metrics: TempoMetrics | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if max_replay_retries < 1:
            raise ValueError("max_replay_retries must be >= 1")
        self.capacity = capacity
        self.max_replay_retries = max_replay_retries
        self._pool = pool
        self._state_key = state_key
        self._metrics = metrics or TempoMetrics()
        self._entries: deque[QueuedOperation] = deque()
        self._lock = asyncio.Lock()
        self._replay_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> list[QueuedOperation]:
        """Return the current entries, oldest first."""
        return list(self._entries)

    @property
    def replaying(self) -> bool:
        return self._replay_lock.locked()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        service: str,
        method: str,
        args: Iterable[Any] = (),
        kwargs: dict[str, Any] | None = None,
    ) -> QueuedOperation:
        """Append an operation, evicting the oldest entry when full."""
        operation = QueuedOperation(
            service=service,
            method=method,
            args=list(args),
            kwargs=dict(kwargs or {}),
        )
        async with self._lock:
            while len(self._entries) >= self.capacity:
                evicted = self._entries.popleft()
                self._metrics.record_evicted()
                logger.warning(
                    "Offline queue full (capacity=%d); evicted oldest operation %s (%s)",
                    self.capacity,
                    evicted.id,
                    evicted.name,
                )
            self._entries.append(operation)
            await self._persist()

        self._metrics.record_enqueued(service)
        logger.info(
            "Queued operation %s (%s) for replay; depth=%d",
            operation.id,
            operation.name,
            len(self._entries),
        )
        return operation

    async def remove(self, operation_id: str) -> bool:
        """Remove an entry by id.  Returns False when it is not queued."""
        async with self._lock:
            removed = self._remove_locked(operation_id)
            if removed:
                await self._persist()
            return removed

    async def clear(self) -> int:
        """Drop every entry.  Returns the number removed."""
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
            await self._persist()
        if count:
            logger.warning("Offline queue cleared; discarded %d operation(s)", count)
        return count

    def _remove_locked(self, operation_id: str) -> bool:
        for entry in self._entries:
            if entry.id == operation_id:
                self._entries.remove(entry)
                return True
        return False

    def _find_locked(self, operation_id: str) -> QueuedOperation | None:
        for entry in self._entries:
            if entry.id == operation_id:
                return entry
        return None

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def replay(self, runner: OperationRunner) -> ReplayReport:
        """Replay queued operations oldest-first through *runner*.

        ``runner`` re-executes one operation (normally through the owning
        proxy's retry path, without re-queueing).  Successful entries are
        removed.  Transient failures bump ``retry_count``; the entry is
        dropped when the count reaches ``max_replay_retries``.  Permanent
        failures are dropped at once since replaying cannot fix them.

        Only one replay runs at a time; a concurrent call returns a report
        with ``skipped=True``.  Operations enqueued while a replay is running
        stay queued behind the entries being replayed.
        """
        if self._replay_lock.locked():
            logger.debug("Offline queue replay already running; skipping")
            return ReplayReport(skipped=True)

        report = ReplayReport()
        async with self._replay_lock:
            pending = self.snapshot()
            if not pending:
                return report

            logger.info("Replaying %d queued operation(s)", len(pending))
            for operation in pending:
                async with self._lock:
                    still_queued = self._find_locked(operation.id) is not None
                if not still_queued:
                    logger.debug("Skipping operation %s; evicted during replay", operation.id)
                    continue
                try:
                    await runner(operation)
                except Exception as exc:
                    await self._record_failure(operation, exc, report)
                    continue

                async with self._lock:
                    if self._remove_locked(operation.id):
                        await self._persist()
                report.applied.append(operation.id)
                self._metrics.record_replayed("applied")
                logger.info("Replayed queued operation %s (%s)", operation.id, operation.name)

        logger.info(
            "Offline queue replay finished: applied=%d retained=%d dropped=%d remaining=%d",
            len(report.applied),
            len(report.retained),
            len(report.dropped),
            len(self._entries),
        )
        return report

    async def _record_failure(
        self,
        operation: QueuedOperation,
        exc: BaseException,
        report: ReplayReport,
    ) -> None:
        async with self._lock:
            entry = self._find_locked(operation.id)
            if entry is None:
                # Evicted while the replay was in flight.
                return
            entry.retry_count += 1
            permanent = not is_transient(exc)
            if permanent or entry.retry_count >= self.max_replay_retries:
                self._remove_locked(entry.id)
                dropped = True
            else:
                dropped = False
            await self._persist()

        if dropped:
            report.dropped.append(operation.id)
            self._metrics.record_replayed("dropped")
            logger.error(
                "Dropping queued operation %s (%s) after %d replay attempt(s); "
                "the change is lost: %s",
                operation.id,
                operation.name,
                entry.retry_count,
                exc,
            )
        else:
            report.retained.append(operation.id)
            self._metrics.record_replayed("retry")
            logger.warning(
                "Replay of queued operation %s (%s) failed (attempt %d/%d): %s",
                operation.id,
                operation.name,
                entry.retry_count,
                self.max_replay_retries,
                exc,
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def restore(self) -> int:
        """Load persisted entries, replacing the in-memory contents.

        Returns the number of entries restored (0 without a pool).
        """
        if self._pool is None:
            return 0
        raw = await state_get(self._pool, self._state_key)
        entries = [QueuedOperation.from_dict(item) for item in (raw or [])]
        async with self._lock:
            self._entries = deque(entries[-self.capacity :])
        logger.info("Restored %d queued operation(s) from %s", len(self._entries), self._state_key)
        return len(self._entries)

    async def _persist(self) -> None:
        """Write the current entries to the KV store; caller holds ``_lock``."""
        if self._pool is None:
            return
        try:
            await state_set(
                self._pool,
                self._state_key,
                [entry.to_dict() for entry in self._entries],
            )
        except Exception:
            logger.exception(
                "Failed to persist offline queue snapshot to %s; entries remain in memory",
                self._state_key,
            )
