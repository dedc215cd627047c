"""Process-level container wiring the planning core together.

``Assistant.create`` builds exactly one ``ProposalStore``, one
``OfflineQueue``, the resilient service wrappers and the three workflows.
The host application constructs it once at start-up, calls ``start()``,
routes workflow requests through ``run_workflow`` and calls
``on_reconnect()`` whenever connectivity to the collaborators returns.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from tempo.config import TempoConfig
from tempo.core.logging import configure_logging
from tempo.core.metrics import TempoMetrics, init_metrics
from tempo.core.state import ensure_state_table
from tempo.core.telemetry import init_telemetry
from tempo.errors import ValidationError
from tempo.proposals.store import Clock, ProposalStore
from tempo.resilience.offline_queue import OfflineQueue, ReplayReport
from tempo.resilience.proxy import (
    ResilientCalendarService,
    ResilientMailboxService,
    ResilientServiceProxy,
    ResilientTaskService,
    ServiceRegistry,
)
from tempo.resilience.retry import RetryExecutor, RetryPolicy, Sleeper
from tempo.services.base import CalendarService, MailboxService, TaskService
from tempo.workflows import WORKFLOW_TYPES, Confirmation, WorkflowOrchestrator, WorkflowResponse
from tempo.workflows.base import WorkflowPhase

logger = logging.getLogger(__name__)


class Assistant:
    """The planning core for one process."""

    def __init__(
        self,
        config: TempoConfig,
        *,
        store: ProposalStore,
        queue: OfflineQueue,
        registry: ServiceRegistry,
        workflows: dict[str, WorkflowOrchestrator],
        pool: Any = None,
    ) -> None:
        self.config = config
        self.store = store
        self.queue = queue
        self.registry = registry
        self.workflows = workflows
        self._pool = pool
        self._started = False

    @classmethod
    def create(
        cls,
        config: TempoConfig,
        *,
        calendar: CalendarService,
        tasks: TaskService,
        mailbox: MailboxService,
        pool: Any = None,
        clock: Clock | None = None,
        sleep: Sleeper | None = None,
    ) -> Assistant:
        """Wire the core around three raw collaborator services.

        Parameters
        ----------
        pool:
            asyncpg pool used to persist the offline queue when
            ``[offline_queue] persist`` is enabled.
        clock, sleep:
            Injected into the proposal store and retry executor.
        """
        metrics = TempoMetrics()
        queue_config = config.offline_queue
        queue = OfflineQueue(
            capacity=queue_config.capacity,
            max_replay_retries=queue_config.max_replay_retries,
            pool=pool if queue_config.persist else None,
            state_key=queue_config.state_key,
            metrics=metrics,
        )
        retry = RetryExecutor(RetryPolicy.from_config(config.retry), sleep=sleep)
        registry = ServiceRegistry(queue)

        def _proxy(name: str, target: Any) -> ResilientServiceProxy:
            return registry.register(
                ResilientServiceProxy(name, target, queue=queue, retry=retry, metrics=metrics)
            )

        resilient_calendar = ResilientCalendarService(_proxy("calendar", calendar))
        resilient_tasks = ResilientTaskService(_proxy("tasks", tasks))
        resilient_mailbox = ResilientMailboxService(_proxy("mailbox", mailbox))

        store = ProposalStore(config.proposals.ttl_minutes, clock=clock, metrics=metrics)
        workflows = {
            workflow_type: workflow_cls(
                store=store,
                calendar=resilient_calendar,
                tasks=resilient_tasks,
                mailbox=resilient_mailbox,
                scheduling=config.scheduling,
            )
            for workflow_type, workflow_cls in WORKFLOW_TYPES.items()
        }
        return cls(
            config,
            store=store,
            queue=queue,
            registry=registry,
            workflows=workflows,
            pool=pool,
        )

    async def start(self, *, configure_logs: bool = True) -> None:
        """Initialise logging and telemetry, then restore the persisted queue."""
        if self._started:
            return
        if configure_logs:
            log_config = self.config.logging
            configure_logging(
                level=log_config.level,
                fmt=log_config.format,
                log_root=Path(log_config.log_root) if log_config.log_root else None,
            )
        init_telemetry(self.config.name)
        init_metrics(self.config.name)

        if self._pool is not None and self.config.offline_queue.persist:
            await ensure_state_table(self._pool)
            restored = await self.queue.restore()
            if restored:
                logger.warning(
                    "%d operation(s) from a previous run are waiting in the offline queue",
                    restored,
                )
        self._started = True
        logger.info(
            "%s started with workflows: %s", self.config.name, ", ".join(sorted(self.workflows))
        )

    async def run_workflow(
        self,
        workflow_type: str,
        owner_id: str,
        target: dict[str, Any] | None = None,
        confirmation: Confirmation | dict[str, Any] | None = None,
    ) -> WorkflowResponse:
        workflow = self.workflows.get(workflow_type)
        if workflow is None:
            error = ValidationError(
                f"Unknown workflow type {workflow_type!r}; "
                f"expected one of {', '.join(sorted(self.workflows))}"
            )
            return WorkflowResponse(
                success=False,
                workflow_type=workflow_type,
                phase=WorkflowPhase.PROPOSAL
                if confirmation is None
                else WorkflowPhase.COMPLETED,
                summary=error.message,
                error=error.to_dict(),
            )
        return await workflow.run(owner_id, target, confirmation)

    async def on_reconnect(self) -> ReplayReport:
        """Replay the offline queue now that the collaborators are reachable."""
        logger.info("Connectivity restored; replaying %d queued operation(s)", len(self.queue))
        return await self.registry.replay()
