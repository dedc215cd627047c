"""Tests for tempo.resilience.proxy: retry, translation and offline queueing."""

from __future__ import annotations

import asyncio

import pytest

from tempo.errors import NotFoundError, QueuedError, TransientServiceError
from tempo.resilience.offline_queue import OfflineQueue, QueuedOperation
from tempo.resilience.proxy import (
    ResilientCalendarService,
    ResilientServiceProxy,
    ResilientTaskService,
    ServiceRegistry,
)
from tempo.resilience.retry import RetryExecutor
from tempo.services.models import TimeBlockCreate
from tests._fakes import DAY, FakeCalendar, FakeTasks, RecordingSleep, at, task

pytestmark = pytest.mark.unit


@pytest.fixture
def queue() -> OfflineQueue:
    return OfflineQueue(capacity=10)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def registry(queue, calendar, sleep) -> ServiceRegistry:
    registry = ServiceRegistry(queue)
    registry.register(
        ResilientServiceProxy(
            "calendar", calendar, queue=queue, retry=RetryExecutor(sleep=sleep)
        )
    )
    return registry


@pytest.fixture
def resilient_calendar(registry) -> ResilientCalendarService:
    return ResilientCalendarService(registry.get("calendar"))


def _payload() -> TimeBlockCreate:
    return TimeBlockCreate(start=at(9), end=at(10), type="work", title="Deep Work Block")


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestCall:
    async def test_success_passes_result_through(self, resilient_calendar, calendar, queue):
        created = await resilient_calendar.create_time_block(payload=_payload())
        assert created.id in calendar.blocks
        assert calendar.script.count("create_time_block") == 1
        assert len(queue) == 0

    async def test_transient_exhaustion_enqueues_exactly_once(
        self, resilient_calendar, calendar, queue, sleep
    ):
        calendar.script.fail_always("create_time_block", ConnectionResetError("offline"))

        with pytest.raises(QueuedError) as exc_info:
            await resilient_calendar.create_time_block(payload=_payload())

        err = exc_info.value
        assert calendar.script.count("create_time_block") == 3
        assert sleep.delays == [1.0, 2.0]
        assert len(queue) == 1
        entry = queue.snapshot()[0]
        assert entry.id == err.operation_id
        assert (entry.service, entry.method) == ("calendar", "create_time_block")
        assert entry.kwargs == {"payload": _payload()}
        assert err.to_dict()["code"] == "queued"

    async def test_permanent_failure_is_translated_and_not_queued(
        self, resilient_calendar, calendar, queue
    ):
        with pytest.raises(NotFoundError) as exc_info:
            await resilient_calendar.delete_time_block(block_id="missing")
        assert exc_info.value.service == "calendar"
        assert exc_info.value.method == "delete_time_block"
        assert calendar.script.count("delete_time_block") == 1
        assert len(queue) == 0

    async def test_cancellation_mid_retry_does_not_enqueue(self, queue, calendar):
        started = asyncio.Event()

        async def blocking_sleep(delay: float) -> None:
            started.set()
            await asyncio.Event().wait()

        proxy = ResilientServiceProxy(
            "calendar", calendar, queue=queue, retry=RetryExecutor(sleep=blocking_sleep)
        )
        calendar.script.fail_always("create_time_block", ConnectionResetError())
        call = asyncio.create_task(proxy.call("create_time_block", payload=_payload()))
        await started.wait()
        call.cancel()
        with pytest.raises(asyncio.CancelledError):
            await call
        assert len(queue) == 0


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestRead:
    async def test_read_exhaustion_raises_and_never_queues(
        self, resilient_calendar, calendar, queue
    ):
        calendar.script.fail_always("list_time_blocks", TimeoutError())
        with pytest.raises(TransientServiceError):
            await resilient_calendar.list_time_blocks(day=DAY)
        assert calendar.script.count("list_time_blocks") == 3
        assert len(queue) == 0

    async def test_read_recovers(self, resilient_calendar, calendar):
        calendar.script.fail_next("get_time_block", ConnectionRefusedError())
        assert await resilient_calendar.get_time_block(block_id="nope") is None
        assert calendar.script.count("get_time_block") == 2


# ---------------------------------------------------------------------------
# Replay through the registry
# ---------------------------------------------------------------------------


class TestReplay:
    async def test_replay_applies_queued_mutation_after_reconnect(
        self, resilient_calendar, calendar, registry, queue
    ):
        calendar.script.fail_always("create_time_block", ConnectionResetError())
        with pytest.raises(QueuedError):
            await resilient_calendar.create_time_block(payload=_payload())
        assert calendar.blocks == {}

        calendar.script.heal()
        report = await registry.replay()

        assert len(report.applied) == 1
        assert len(queue) == 0
        [created] = calendar.blocks.values()
        assert created.title == "Deep Work Block"

    async def test_replay_failure_does_not_requeue(self, calendar, registry, queue):
        op = await queue.enqueue("calendar", "create_time_block", kwargs={"payload": _payload()})
        calendar.script.fail_always("create_time_block", ConnectionResetError())

        report = await registry.replay()
        assert report.retained == [op.id]
        assert len(queue) == 1
        assert queue.snapshot()[0].retry_count == 1

    async def test_unknown_service_is_dropped(self, registry, queue):
        await queue.enqueue("weather", "refresh")
        report = await registry.replay()
        assert len(report.dropped) == 1
        assert len(queue) == 0

    async def test_registry_rejects_foreign_queue(self, registry):
        proxy = ResilientServiceProxy("tasks", FakeTasks(), queue=OfflineQueue())
        with pytest.raises(ValueError):
            registry.register(proxy)

    async def test_run_queued_uses_owning_proxy(self, queue, sleep):
        tasks = FakeTasks([task("t1")])
        registry = ServiceRegistry(queue)
        registry.register(
            ResilientServiceProxy("tasks", tasks, queue=queue, retry=RetryExecutor(sleep=sleep))
        )
        op = QueuedOperation(
            service="tasks",
            method="assign_task_to_block",
            kwargs={"task_id": "t1", "block_id": "b1"},
        )
        assigned = await registry.run_queued(op)
        assert assigned.block_id == "b1"
        assert ResilientTaskService(registry.get("tasks")).proxy is registry.get("tasks")
