"""Canonical shapes exchanged with the calendar, task and mailbox collaborators."""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _assume_tz(value: datetime, tz: tzinfo) -> datetime:
    """Attach *tz* to a naive datetime; aware values pass through unchanged."""
    return value if value.tzinfo is not None else value.replace(tzinfo=tz)


class BlockType(StrEnum):
    """Kinds of time blocks on a user's day."""

    work = "work"
    email = "email"
    break_ = "break"
    meeting = "meeting"
    blocked = "blocked"


class TaskPriority(StrEnum):
    high = "high"
    medium = "medium"
    low = "low"


class TaskStatus(StrEnum):
    backlog = "backlog"
    scheduled = "scheduled"
    completed = "completed"


class TimeBlock(BaseModel):
    """A committed interval on the user's calendar."""

    model_config = ConfigDict(extra="ignore")

    id: str
    start: datetime
    end: datetime
    type: BlockType = BlockType.work
    title: str = ""
    protected: bool = False

    @model_validator(mode="after")
    def _validate_range(self) -> TimeBlock:
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def is_flexible(self) -> bool:
        """True when the planner may move or delete this block."""
        return not self.protected and self.type != BlockType.meeting

    def localized(self, tz: tzinfo) -> TimeBlock:
        """Return this block with naive start/end interpreted in *tz*."""
        if self.start.tzinfo is not None and self.end.tzinfo is not None:
            return self
        return self.model_copy(
            update={
                "start": _assume_tz(self.start, tz),
                "end": _assume_tz(self.end, tz),
            }
        )


class TimeBlockCreate(BaseModel):
    """Payload for creating a time block."""

    model_config = ConfigDict(extra="forbid")

    start: datetime
    end: datetime
    type: BlockType
    title: str = Field(min_length=1)
    protected: bool = False


class TimeBlockUpdate(BaseModel):
    """Patch payload for moving or renaming a time block."""

    model_config = ConfigDict(extra="forbid")

    start: datetime | None = None
    end: datetime | None = None
    title: str | None = None
    type: BlockType | None = None


class Task(BaseModel):
    """A pending work item from the task backlog."""

    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    priority: TaskPriority = TaskPriority.medium
    estimated_minutes: int | None = Field(default=None, gt=0)
    status: TaskStatus = TaskStatus.backlog
    block_id: str | None = None


class TaskCreate(BaseModel):
    """Payload for creating a task."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(min_length=1)
    priority: TaskPriority = TaskPriority.medium
    estimated_minutes: int | None = Field(default=None, gt=0)
    source_email_id: str | None = None


class EmailMessage(BaseModel):
    """An inbox message as seen by the triage workflow."""

    model_config = ConfigDict(extra="ignore")

    id: str
    sender: str
    subject: str = ""
    snippet: str = ""
    received_at: datetime
    labels: list[str] = Field(default_factory=list)

    @field_validator("received_at")
    @classmethod
    def _received_at_utc(cls, value: datetime) -> datetime:
        return _assume_tz(value, UTC)
