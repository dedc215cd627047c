"""In-memory collaborator services, clocks and pools shared by the test suite."""

from __future__ import annotations

import asyncio
import json
import uuid
from collections import defaultdict
from datetime import UTC, date, datetime, timedelta
from typing import Any

from tempo.services.base import CalendarService, MailboxService, TaskService
from tempo.services.models import (
    EmailMessage,
    Task,
    TaskCreate,
    TaskStatus,
    TimeBlock,
    TimeBlockCreate,
    TimeBlockUpdate,
)

# ---------------------------------------------------------------------------
# Failure injection
# ---------------------------------------------------------------------------


class FailureScript:
    """Per-method queue of exceptions raised before a call is served."""

    def __init__(self) -> None:
        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self._always: dict[str, BaseException] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def fail_next(self, method: str, *errors: BaseException) -> None:
        self._failures[method].extend(errors)

    def fail_always(self, method: str, error: BaseException) -> None:
        self._always[method] = error

    def heal(self, method: str | None = None) -> None:
        if method is None:
            self._failures.clear()
            self._always.clear()
        else:
            self._failures.pop(method, None)
            self._always.pop(method, None)

    def check(self, method: str, **kwargs: Any) -> None:
        self.calls.append((method, kwargs))
        if self._failures.get(method):
            raise self._failures[method].pop(0)
        if method in self._always:
            raise self._always[method]

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)


# ---------------------------------------------------------------------------
# Fake services
# ---------------------------------------------------------------------------


class FakeCalendar(CalendarService):
    def __init__(self, blocks: list[TimeBlock] | None = None) -> None:
        self.blocks: dict[str, TimeBlock] = {b.id: b for b in blocks or []}
        self.script = FailureScript()

    async def list_time_blocks(self, *, day: date) -> list[TimeBlock]:
        self.script.check("list_time_blocks", day=day)
        return sorted(
            (b for b in self.blocks.values() if b.start.date() <= day <= b.end.date()),
            key=lambda b: b.start,
        )

    async def get_time_block(self, *, block_id: str) -> TimeBlock | None:
        self.script.check("get_time_block", block_id=block_id)
        return self.blocks.get(block_id)

    async def create_time_block(self, *, payload: TimeBlockCreate) -> TimeBlock:
        self.script.check("create_time_block", payload=payload)
        block = TimeBlock(id=f"blk-{uuid.uuid4().hex[:8]}", **payload.model_dump())
        self.blocks[block.id] = block
        return block

    async def update_time_block(self, *, block_id: str, patch: TimeBlockUpdate) -> TimeBlock:
        self.script.check("update_time_block", block_id=block_id, patch=patch)
        if block_id not in self.blocks:
            raise LookupError(block_id)
        updated = self.blocks[block_id].model_copy(update=patch.model_dump(exclude_none=True))
        self.blocks[block_id] = updated
        return updated

    async def delete_time_block(self, *, block_id: str) -> None:
        self.script.check("delete_time_block", block_id=block_id)
        if self.blocks.pop(block_id, None) is None:
            raise LookupError(block_id)

    async def check_conflicts(
        self,
        *,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[TimeBlock]:
        self.script.check("check_conflicts", start=start, end=end, exclude_id=exclude_id)
        return [
            b
            for b in self.blocks.values()
            if b.id != exclude_id and b.start < end and start < b.end
        ]


class FakeTasks(TaskService):
    def __init__(self, tasks: list[Task] | None = None) -> None:
        self.tasks: dict[str, Task] = {t.id: t for t in tasks or []}
        self.script = FailureScript()

    async def list_backlog(self) -> list[Task]:
        self.script.check("list_backlog")
        return [t for t in self.tasks.values() if t.status != TaskStatus.completed]

    async def get_task(self, *, task_id: str) -> Task | None:
        self.script.check("get_task", task_id=task_id)
        return self.tasks.get(task_id)

    async def create_task(self, *, payload: TaskCreate) -> Task:
        self.script.check("create_task", payload=payload)
        task = Task(
            id=f"task-{uuid.uuid4().hex[:8]}",
            title=payload.title,
            priority=payload.priority,
            estimated_minutes=payload.estimated_minutes,
        )
        self.tasks[task.id] = task
        return task

    async def assign_task_to_block(self, *, task_id: str, block_id: str) -> Task:
        self.script.check("assign_task_to_block", task_id=task_id, block_id=block_id)
        if task_id not in self.tasks:
            raise LookupError(task_id)
        task = self.tasks[task_id].model_copy(
            update={"block_id": block_id, "status": TaskStatus.scheduled}
        )
        self.tasks[task_id] = task
        return task


class FakeMailbox(MailboxService):
    def __init__(self, messages: list[EmailMessage] | None = None) -> None:
        self.messages: dict[str, EmailMessage] = {m.id: m for m in messages or []}
        self.archived: list[str] = []
        self.script = FailureScript()

    async def list_unread(self, *, limit: int = 50) -> list[EmailMessage]:
        self.script.check("list_unread", limit=limit)
        unread = [m for m in self.messages.values() if m.id not in self.archived]
        return unread[:limit]

    async def get_message(self, *, message_id: str) -> EmailMessage | None:
        self.script.check("get_message", message_id=message_id)
        return self.messages.get(message_id)

    async def archive_message(self, *, message_id: str) -> None:
        self.script.check("archive_message", message_id=message_id)
        if message_id not in self.messages:
            raise LookupError(message_id)
        self.archived.append(message_id)

    async def label_message(self, *, message_id: str, label: str) -> EmailMessage:
        self.script.check("label_message", message_id=message_id, label=label)
        if message_id not in self.messages:
            raise LookupError(message_id)
        message = self.messages[message_id]
        updated = message.model_copy(update={"labels": [*message.labels, label]})
        self.messages[message_id] = updated
        return updated


# ---------------------------------------------------------------------------
# Time control
# ---------------------------------------------------------------------------


class ManualClock:
    """A clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 2, 8, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Database stand-in
# ---------------------------------------------------------------------------


class MockPool:
    """Minimal asyncpg pool stand-in backing the ``state`` table with a dict."""

    def __init__(self) -> None:
        self.rows: dict[str, str] = {}
        self.versions: dict[str, int] = {}
        self.executed: list[str] = []
        self.fail_writes = False

    async def execute(self, query: str, *args: Any) -> str:
        self.executed.append(query)
        return "OK"

    async def fetchval(self, query: str, *args: Any) -> Any:
        if query.strip().startswith("SELECT"):
            return self.rows.get(args[0])
        if self.fail_writes:
            raise ConnectionResetError("database went away")
        key, value = args
        json.loads(value)
        self.rows[key] = value
        self.versions[key] = self.versions.get(key, 0) + 1
        return self.versions[key]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

DAY = date(2026, 3, 2)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def block(
    block_id: str,
    start: tuple[int, int],
    end: tuple[int, int],
    *,
    type: str = "meeting",
    title: str | None = None,
    protected: bool = False,
) -> TimeBlock:
    return TimeBlock(
        id=block_id,
        start=at(*start),
        end=at(*end),
        type=type,
        title=title or block_id,
        protected=protected,
    )


def task(
    task_id: str,
    priority: str = "medium",
    minutes: int | None = 30,
    *,
    title: str | None = None,
    status: str = "backlog",
) -> Task:
    return Task(
        id=task_id,
        title=title or task_id,
        priority=priority,
        estimated_minutes=minutes,
        status=status,
    )


def email(
    message_id: str,
    *,
    sender: str = "someone@example.com",
    subject: str = "",
    snippet: str = "",
    received_at: datetime | None = None,
) -> EmailMessage:
    return EmailMessage(
        id=message_id,
        sender=sender,
        subject=subject,
        snippet=snippet,
        received_at=received_at or at(7, 30),
    )
