"""schedule-day: lay out work, email, lunch and break blocks for one day."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tempo.config import ConfigError
from tempo.errors import ConflictError, TransientServiceError, ValidationError
from tempo.proposals.models import (
    ChangeDescriptor,
    ChangeTarget,
    ChangeType,
    OwnerContext,
    ProposalPayload,
)
from tempo.scheduling.day_plan import plan_day, summarize_plan
from tempo.scheduling.gaps import find_gaps
from tempo.scheduling.models import DayPreferences
from tempo.services.models import TimeBlock, TimeBlockCreate, TimeBlockUpdate
from tempo.workflows.base import WorkflowOrchestrator

logger = logging.getLogger(__name__)


class ScheduleDayWorkflow(WorkflowOrchestrator):
    """Propose a full-day layout around the blocks already on the calendar.

    Target keys: ``date`` (ISO, required), ``preferences`` (optional
    overrides of the work window, lunch and break lengths) and ``timezone``
    (optional IANA name, default UTC).
    """

    workflow_type = "schedule-day"

    def validate_target(self, target: dict[str, Any]) -> dict[str, Any]:
        raw_date = target.get("date")
        if not raw_date:
            raise ValidationError("schedule-day requires a 'date' (YYYY-MM-DD)")
        try:
            day = raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date))
        except ValueError as exc:
            raise ValidationError(f"Invalid date {raw_date!r}; expected YYYY-MM-DD") from exc

        preferences = target.get("preferences") or {}
        if not isinstance(preferences, dict):
            raise ValidationError("preferences must be an object")
        try:
            prefs = DayPreferences.from_config(self.scheduling).merged(preferences)
        except (ConfigError, TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid preferences: {exc}") from exc

        tz_name = target.get("timezone") or "UTC"
        try:
            tz = ZoneInfo(str(tz_name))
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValidationError(f"Unknown timezone {tz_name!r}") from exc

        return {"date": day, "preferences": prefs, "tz": tz}

    def owner_context(self, owner_id: str, target: dict[str, Any]) -> OwnerContext:
        return OwnerContext(user_id=owner_id, date=target["date"].isoformat())

    def lookup_filters(self, target: dict[str, Any]) -> dict[str, Any]:
        raw_date = target.get("date")
        if raw_date is None:
            return {}
        return {"date": raw_date.isoformat() if isinstance(raw_date, date) else str(raw_date)}

    async def analyze(self, target: dict[str, Any]) -> list[TimeBlock]:
        blocks = await self.calendar.list_time_blocks(day=target["date"])
        logger.debug("Found %d existing block(s) on %s", len(blocks), target["date"])
        return [b.localized(target["tz"]) for b in blocks]

    def build_changes(self, analysis: list[TimeBlock], target: dict[str, Any]) -> ProposalPayload:
        day: date = target["date"]
        prefs: DayPreferences = target["preferences"]
        changes = plan_day(analysis, day, prefs, tz=target["tz"])

        window_start = datetime.combine(day, prefs.work_start, tzinfo=target["tz"])
        window_end = datetime.combine(day, prefs.work_end, tzinfo=target["tz"])
        gaps = find_gaps(
            analysis,
            window_start,
            window_end,
            min_gap_minutes=self.scheduling.min_gap_minutes,
        )
        return ProposalPayload(
            changes=changes,
            summary=summarize_plan(changes) if changes else f"{day.isoformat()} is already planned",
            details={
                "date": day.isoformat(),
                "existing_blocks": len(analysis),
                "gaps": [gap.to_dict() for gap in gaps],
            },
        )

    async def _ensure_free(
        self, start: datetime, end: datetime, exclude_id: str | None = None
    ) -> None:
        """Raise ConflictError when ``[start, end)`` overlaps a committed block."""
        try:
            conflicts = await self.calendar.check_conflicts(
                start=start, end=end, exclude_id=exclude_id
            )
        except TransientServiceError as exc:
            logger.warning("Conflict check unavailable (%s); applying without it", exc.code)
            return
        if conflicts:
            titles = ", ".join(b.title or b.id for b in conflicts)
            raise ConflictError(
                f"{start.isoformat()}-{end.isoformat()} overlaps {titles}",
                service="calendar",
                method="check_conflicts",
            )

    async def apply_change(self, change: ChangeDescriptor, owner: OwnerContext) -> Any:
        if change.target is not ChangeTarget.TIME_BLOCK:
            raise ValidationError(f"schedule-day cannot apply changes to {change.target}")

        if change.type is ChangeType.CREATE:
            payload = TimeBlockCreate.model_validate(change.fields)
            await self._ensure_free(payload.start, payload.end)
            return await self.calendar.create_time_block(payload=payload)

        if not change.ref:
            raise ValidationError(f"{change.type} change {change.id} has no block reference")

        if change.type is ChangeType.MOVE:
            patch = TimeBlockUpdate.model_validate(change.fields)
            if patch.start is not None and patch.end is not None:
                await self._ensure_free(patch.start, patch.end, exclude_id=change.ref)
            return await self.calendar.update_time_block(block_id=change.ref, patch=patch)

        if change.type is ChangeType.DELETE:
            await self.calendar.delete_time_block(block_id=change.ref)
            return None

        raise ValidationError(f"schedule-day does not support {change.type} changes")
