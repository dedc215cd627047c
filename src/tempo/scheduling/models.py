"""Value types produced by the scheduling heuristics."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime, time
from typing import Any

from tempo.config import SchedulingConfig, parse_clock_time
from tempo.services.models import Task


class FitStrategy(enum.StrEnum):
    """How candidate tasks are ranked when filling a block."""

    PRIORITY = "priority"
    QUICK_WINS = "quick_wins"
    MIXED = "mixed"


@dataclass(frozen=True)
class Gap:
    """A free interval inside the work window."""

    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "duration_minutes": self.duration_minutes,
        }


@dataclass(frozen=True)
class ScoredWorkItem:
    task: Task
    score: float
    minutes: int


@dataclass
class FitResult:
    """The chosen combination of tasks for one block."""

    strategy: FitStrategy
    available_minutes: int
    items: list[ScoredWorkItem] = field(default_factory=list)
    reasoning: str = ""

    @property
    def total_minutes(self) -> int:
        return sum(item.minutes for item in self.items)

    @property
    def total_score(self) -> float:
        return sum(item.score for item in self.items)

    @property
    def remaining_minutes(self) -> int:
        return self.available_minutes - self.total_minutes

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "available_minutes": self.available_minutes,
            "total_minutes": self.total_minutes,
            "total_score": self.total_score,
            "reasoning": self.reasoning,
            "tasks": [
                {"task_id": item.task.id, "title": item.task.title, "score": item.score,
                 "minutes": item.minutes}
                for item in self.items
            ],
        }


@dataclass(frozen=True)
class DayPreferences:
    """Work window and fixed-block preferences for laying out a day."""

    work_start: time = time(9, 0)
    work_end: time = time(17, 0)
    lunch_time: time = time(12, 0)
    lunch_minutes: int = 60
    break_minutes: int = 15

    @classmethod
    def from_config(cls, config: SchedulingConfig) -> DayPreferences:
        return cls(
            work_start=config.work_start,
            work_end=config.work_end,
            lunch_time=config.lunch_time,
            lunch_minutes=config.lunch_minutes,
            break_minutes=config.break_minutes,
        )

    def merged(self, overrides: dict[str, Any] | None) -> DayPreferences:
        """Return a copy with per-request *overrides* applied.

        Raises ``ConfigError`` for malformed clock times and ``ValueError``
        for an inverted window or non-positive durations.
        """
        if not overrides:
            return self
        changes: dict[str, Any] = {}
        for key in ("work_start", "work_end", "lunch_time"):
            if overrides.get(key) is not None:
                changes[key] = parse_clock_time(overrides[key], f"preferences.{key}")
        for key in ("lunch_minutes", "break_minutes"):
            if overrides.get(key) is not None:
                value = int(overrides[key])
                if value <= 0:
                    raise ValueError(f"preferences.{key} must be positive")
                changes[key] = value
        merged = replace(self, **changes)
        if merged.work_end <= merged.work_start:
            raise ValueError("preferences.work_end must be after work_start")
        return merged
