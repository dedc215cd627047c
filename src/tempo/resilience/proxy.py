"""Retry, translate and queue calls to the calendar, task and mailbox services.

``ResilientServiceProxy`` wraps one collaborator.  Every call goes through a
``RetryExecutor``; each attempt is traced with ``service_span`` and counted
on ``tempo.service.attempts_total``.

Mutations (``call``) that exhaust their retries on transient failures are
appended to the shared ``OfflineQueue`` and surface as ``QueuedError``.
Reads (``read``) are never queued; exhaustion surfaces as
``RetryExhaustedError``.  Permanent failures are translated into the core
taxonomy and raised after the first attempt.

The typed wrappers below implement the service contracts on top of a proxy,
so workflows depend on ``CalendarService`` / ``TaskService`` /
``MailboxService`` only.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import Any

from tempo.core.metrics import TempoMetrics
from tempo.core.telemetry import service_span
from tempo.errors import QueuedError, RetryExhaustedError, ServiceError
from tempo.resilience.classifier import translate_error
from tempo.resilience.offline_queue import OfflineQueue, QueuedOperation, ReplayReport
from tempo.resilience.retry import RetryExecutor
from tempo.services.base import CalendarService, MailboxService, TaskService
from tempo.services.models import (
    EmailMessage,
    Task,
    TaskCreate,
    TimeBlock,
    TimeBlockCreate,
    TimeBlockUpdate,
)

logger = logging.getLogger(__name__)


class ResilientServiceProxy:
    """Resilient wrapper around one collaborator object.

    Parameters
    ----------
    name:
        Service name used in queue entries, spans, metrics and errors.
    target:
        The wrapped collaborator; methods are looked up by name.
    queue:
        Shared offline queue for mutations that cannot be delivered.
    retry:
        Retry executor; defaults to the standard 3-attempt policy.
    """

    def __init__(
        self,
        name: str,
        target: Any,
        *,
        queue: OfflineQueue,
        retry: RetryExecutor | None = None,
        metrics: TempoMetrics | None = None,
    ) -> None:
        self.name = name
        self.target = target
        self.queue = queue
        self.retry = retry or RetryExecutor()
        self._metrics = metrics or TempoMetrics()

    def _resolve(self, method: str) -> Any:
        fn = getattr(self.target, method, None)
        if fn is None or not callable(fn):
            raise ServiceError(
                f"{self.name} has no method {method!r}", service=self.name, method=method
            )
        return fn

    async def _execute(self, method: str, args: Iterable[Any], kwargs: dict[str, Any]) -> Any:
        fn = self._resolve(method)
        call_args = list(args)
        attempt = 0

        async def _attempt() -> Any:
            nonlocal attempt
            attempt += 1
            with service_span(self.name, method, attempt=attempt):
                return await fn(*call_args, **kwargs)

        def _record(_attempt_no: int, exc: BaseException | None) -> None:
            self._metrics.record_attempt(self.name, method, "ok" if exc is None else "error")

        return await self.retry.run(
            _attempt,
            description=f"{self.name}.{method}",
            on_attempt=_record,
        )

    async def call(self, method: str, /, *args: Any, **kwargs: Any) -> Any:
        """Invoke a mutating *method*; queue it if connectivity is gone.

        Raises
        ------
        QueuedError
            Retries were exhausted on transient failures and the operation
            is now waiting in the offline queue.
        TempoError
            A permanent failure, translated.
        """
        try:
            return await self._execute(method, args, kwargs)
        except RetryExhaustedError as exc:
            operation = await self.queue.enqueue(self.name, method, args, kwargs)
            logger.warning(
                "%s.%s unavailable after %d attempts; queued as %s",
                self.name,
                method,
                exc.attempts,
                operation.id,
            )
            raise QueuedError(
                f"{self.name}.{method} queued for replay",
                operation_id=operation.id,
                service=self.name,
                method=method,
                cause=exc.cause,
            ) from exc
        except Exception as exc:
            raise translate_error(exc, service=self.name, method=method) from exc

    async def read(self, method: str, /, *args: Any, **kwargs: Any) -> Any:
        """Invoke a read-only *method*; never queued."""
        try:
            return await self._execute(method, args, kwargs)
        except Exception as exc:
            raise translate_error(exc, service=self.name, method=method) from exc

    async def replay_operation(self, operation: QueuedOperation) -> Any:
        """Re-run a queued operation through the retry path without re-queueing."""
        try:
            return await self._execute(operation.method, operation.args, operation.kwargs)
        except Exception as exc:
            raise translate_error(exc, service=self.name, method=operation.method) from exc


class ServiceRegistry:
    """Named proxies sharing one offline queue."""

    def __init__(self, queue: OfflineQueue) -> None:
        self.queue = queue
        self._proxies: dict[str, ResilientServiceProxy] = {}

    def register(self, proxy: ResilientServiceProxy) -> ResilientServiceProxy:
        if proxy.queue is not self.queue:
            raise ValueError(f"proxy {proxy.name!r} uses a different offline queue")
        self._proxies[proxy.name] = proxy
        return proxy

    def get(self, name: str) -> ResilientServiceProxy | None:
        return self._proxies.get(name)

    def names(self) -> list[str]:
        return sorted(self._proxies)

    async def run_queued(self, operation: QueuedOperation) -> Any:
        proxy = self._proxies.get(operation.service)
        if proxy is None:
            raise ServiceError(
                f"No service registered for queued operation {operation.name}",
                service=operation.service,
                method=operation.method,
            )
        return await proxy.replay_operation(operation)

    async def replay(self) -> ReplayReport:
        """Replay the offline queue through the registered proxies."""
        return await self.queue.replay(self.run_queued)


# ---------------------------------------------------------------------------
# Typed wrappers
# ---------------------------------------------------------------------------


class ResilientCalendarService(CalendarService):
    def __init__(self, proxy: ResilientServiceProxy) -> None:
        self.proxy = proxy

    async def list_time_blocks(self, *, day: date) -> list[TimeBlock]:
        return await self.proxy.read("list_time_blocks", day=day)

    async def get_time_block(self, *, block_id: str) -> TimeBlock | None:
        return await self.proxy.read("get_time_block", block_id=block_id)

    async def create_time_block(self, *, payload: TimeBlockCreate) -> TimeBlock:
        return await self.proxy.call("create_time_block", payload=payload)

    async def update_time_block(self, *, block_id: str, patch: TimeBlockUpdate) -> TimeBlock:
        return await self.proxy.call("update_time_block", block_id=block_id, patch=patch)

    async def delete_time_block(self, *, block_id: str) -> None:
        await self.proxy.call("delete_time_block", block_id=block_id)

    async def check_conflicts(
        self,
        *,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[TimeBlock]:
        return await self.proxy.read(
            "check_conflicts", start=start, end=end, exclude_id=exclude_id
        )


class ResilientTaskService(TaskService):
    def __init__(self, proxy: ResilientServiceProxy) -> None:
        self.proxy = proxy

    async def list_backlog(self) -> list[Task]:
        return await self.proxy.read("list_backlog")

    async def get_task(self, *, task_id: str) -> Task | None:
        return await self.proxy.read("get_task", task_id=task_id)

    async def create_task(self, *, payload: TaskCreate) -> Task:
        return await self.proxy.call("create_task", payload=payload)

    async def assign_task_to_block(self, *, task_id: str, block_id: str) -> Task:
        return await self.proxy.call("assign_task_to_block", task_id=task_id, block_id=block_id)


class ResilientMailboxService(MailboxService):
    def __init__(self, proxy: ResilientServiceProxy) -> None:
        self.proxy = proxy

    async def list_unread(self, *, limit: int = 50) -> list[EmailMessage]:
        return await self.proxy.read("list_unread", limit=limit)

    async def get_message(self, *, message_id: str) -> EmailMessage | None:
        return await self.proxy.read("get_message", message_id=message_id)

    async def archive_message(self, *, message_id: str) -> None:
        await self.proxy.call("archive_message", message_id=message_id)

    async def label_message(self, *, message_id: str, label: str) -> EmailMessage:
        return await self.proxy.call("label_message", message_id=message_id, label=label)
