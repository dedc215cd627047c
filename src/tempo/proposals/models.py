"""Data models for proposals.

A proposal is the data-only record of a computed plan that awaits user
confirmation.  ``ChangeDescriptor`` is the single change schema shared by
every workflow; each descriptor is independently applicable.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProposalStatus(enum.StrEnum):
    """Lifecycle states of a stored proposal."""

    PENDING = "pending"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class ChangeType(enum.StrEnum):
    CREATE = "create"
    MOVE = "move"
    DELETE = "delete"
    ASSIGN = "assign"
    UPDATE = "update"


class ChangeTarget(enum.StrEnum):
    TIME_BLOCK = "time_block"
    TASK = "task"
    EMAIL = "email"


def _change_id() -> str:
    return uuid.uuid4().hex[:12]


class ChangeDescriptor(BaseModel):
    """One independently applicable change within a proposal."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=_change_id, min_length=1)
    type: ChangeType
    target: ChangeTarget
    ref: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
    reason: str | None = None


class ProposalPayload(BaseModel):
    """The plan presented to the user."""

    model_config = ConfigDict(extra="forbid")

    changes: list[ChangeDescriptor] = Field(default_factory=list)
    summary: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    def change_ids(self) -> list[str]:
        return [change.id for change in self.changes]


@dataclass(frozen=True)
class OwnerContext:
    """Who a proposal belongs to and what it was computed for."""

    user_id: str
    date: str | None = None
    block_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "date": self.date, "block_id": self.block_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OwnerContext:
        return cls(
            user_id=str(data["user_id"]),
            date=data.get("date"),
            block_id=data.get("block_id"),
        )


def _parse_uuid(value: Any) -> uuid.UUID:
    """Parse a UUID from a string or UUID object."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def _parse_datetime(value: Any) -> datetime:
    """Parse a datetime from a string or datetime object."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _parse_optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return _parse_datetime(value)


@dataclass
class Proposal:
    """A stored plan awaiting confirmation.

    ``consumed_at`` is set exactly once, by ``ProposalStore.consume``.
    """

    id: uuid.UUID
    workflow_type: str
    owner: OwnerContext
    payload: ProposalPayload
    created_at: datetime
    expires_at: datetime
    consumed_at: datetime | None = None

    def status(self, now: datetime) -> ProposalStatus:
        if self.consumed_at is not None:
            return ProposalStatus.CONSUMED
        if now >= self.expires_at:
            return ProposalStatus.EXPIRED
        return ProposalStatus.PENDING

    def belongs_to(self, owner: OwnerContext | str | None) -> bool:
        """True when *owner* is None or names the same user."""
        if owner is None:
            return True
        user_id = owner.user_id if isinstance(owner, OwnerContext) else owner
        return self.owner.user_id == user_id

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary."""
        return {
            "id": str(self.id),
            "workflow_type": self.workflow_type,
            "owner": self.owner.to_dict(),
            "payload": self.payload.model_dump(mode="json"),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "consumed_at": self.consumed_at.isoformat() if self.consumed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Proposal:
        """Reconstruct a Proposal from a dictionary (e.g. from to_dict())."""
        return cls(
            id=_parse_uuid(data["id"]),
            workflow_type=data["workflow_type"],
            owner=OwnerContext.from_dict(data["owner"]),
            payload=ProposalPayload.model_validate(data["payload"]),
            created_at=_parse_datetime(data["created_at"]),
            expires_at=_parse_datetime(data["expires_at"]),
            consumed_at=_parse_optional_datetime(data.get("consumed_at")),
        )
