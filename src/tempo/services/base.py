"""Collaborator contracts consumed by the planning core.

Concrete adapters (Google Calendar, Gmail, a task database, ...) live outside
this package.  Their failures must surface as exceptions the resilience
classifier can sort into transient and permanent.
"""

from __future__ import annotations

import abc
from datetime import date, datetime

from tempo.services.models import (
    EmailMessage,
    Task,
    TaskCreate,
    TimeBlock,
    TimeBlockCreate,
    TimeBlockUpdate,
)


class CalendarService(abc.ABC):
    """Time blocks on the user's calendar."""

    @abc.abstractmethod
    async def list_time_blocks(self, *, day: date) -> list[TimeBlock]:
        """Return the blocks that overlap *day*."""
        ...

    @abc.abstractmethod
    async def get_time_block(self, *, block_id: str) -> TimeBlock | None:
        """Fetch a single block by id."""
        ...

    @abc.abstractmethod
    async def create_time_block(self, *, payload: TimeBlockCreate) -> TimeBlock:
        """Create a block."""
        ...

    @abc.abstractmethod
    async def update_time_block(self, *, block_id: str, patch: TimeBlockUpdate) -> TimeBlock:
        """Move or rename a block."""
        ...

    @abc.abstractmethod
    async def delete_time_block(self, *, block_id: str) -> None:
        """Delete a block."""
        ...

    @abc.abstractmethod
    async def check_conflicts(
        self,
        *,
        start: datetime,
        end: datetime,
        exclude_id: str | None = None,
    ) -> list[TimeBlock]:
        """Return committed blocks overlapping ``[start, end)``."""
        ...


class TaskService(abc.ABC):
    """The user's task backlog."""

    @abc.abstractmethod
    async def list_backlog(self) -> list[Task]:
        """Return tasks that are not completed."""
        ...

    @abc.abstractmethod
    async def get_task(self, *, task_id: str) -> Task | None:
        ...

    @abc.abstractmethod
    async def create_task(self, *, payload: TaskCreate) -> Task:
        ...

    @abc.abstractmethod
    async def assign_task_to_block(self, *, task_id: str, block_id: str) -> Task:
        """Attach a task to a time block and mark it scheduled."""
        ...


class MailboxService(abc.ABC):
    """The user's inbox."""

    @abc.abstractmethod
    async def list_unread(self, *, limit: int = 50) -> list[EmailMessage]:
        ...

    @abc.abstractmethod
    async def get_message(self, *, message_id: str) -> EmailMessage | None:
        ...

    @abc.abstractmethod
    async def archive_message(self, *, message_id: str) -> None:
        ...

    @abc.abstractmethod
    async def label_message(self, *, message_id: str, label: str) -> EmailMessage:
        ...
