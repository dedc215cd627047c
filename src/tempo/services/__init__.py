"""Collaborator service contracts and the shapes they exchange."""

from tempo.services.base import CalendarService, MailboxService, TaskService
from tempo.services.models import (
    BlockType,
    EmailMessage,
    Task,
    TaskCreate,
    TaskPriority,
    TaskStatus,
    TimeBlock,
    TimeBlockCreate,
    TimeBlockUpdate,
)

__all__ = [
    "BlockType",
    "CalendarService",
    "EmailMessage",
    "MailboxService",
    "Task",
    "TaskCreate",
    "TaskPriority",
    "TaskService",
    "TaskStatus",
    "TimeBlock",
    "TimeBlockCreate",
    "TimeBlockUpdate",
]
