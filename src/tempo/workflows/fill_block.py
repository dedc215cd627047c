"""fill-block: pick backlog tasks that fit one existing time block."""

from __future__ import annotations

import logging
from typing import Any

from tempo.errors import NotFoundError, ValidationError
from tempo.proposals.models import (
    ChangeDescriptor,
    ChangeTarget,
    ChangeType,
    OwnerContext,
    ProposalPayload,
)
from tempo.scheduling.fitting import fit_tasks
from tempo.scheduling.models import FitStrategy
from tempo.services.models import Task, TimeBlock
from tempo.workflows.base import WorkflowOrchestrator

logger = logging.getLogger(__name__)


class FillBlockWorkflow(WorkflowOrchestrator):
    workflow_type = "fill-block"

    def validate_target(self, target: dict[str, Any]) -> dict[str, Any]:
        block_id = target.get("block_id")
        if not isinstance(block_id, str) or not block_id.strip():
            raise ValidationError("fill-block requires a 'block_id'")
        raw_strategy = target.get("strategy") or FitStrategy.MIXED
        try:
            strategy = FitStrategy(raw_strategy)
        except ValueError as exc:
            choices = ", ".join(s.value for s in FitStrategy)
            raise ValidationError(
                f"Unknown strategy {raw_strategy!r}; expected one of {choices}"
            ) from exc
        day = target.get("date")
        return {
            "block_id": block_id.strip(),
            "strategy": strategy,
            "date": str(day) if day is not None else None,
        }

    def owner_context(self, owner_id: str, target: dict[str, Any]) -> OwnerContext:
        return OwnerContext(user_id=owner_id, date=target["date"], block_id=target["block_id"])

    def lookup_filters(self, target: dict[str, Any]) -> dict[str, Any]:
        filters = {}
        if target.get("block_id"):
            filters["block_id"] = str(target["block_id"])
        if target.get("date"):
            filters["date"] = str(target["date"])
        return filters

    async def analyze(self, target: dict[str, Any]) -> tuple[TimeBlock, list[Task]]:
        block = await self.calendar.get_time_block(block_id=target["block_id"])
        if block is None:
            raise NotFoundError(f"Time block {target['block_id']!r} not found")
        backlog = await self.tasks.list_backlog()
        return block, backlog

    def build_changes(
        self, analysis: tuple[TimeBlock, list[Task]], target: dict[str, Any]
    ) -> ProposalPayload:
        block, backlog = analysis
        config = self.scheduling
        fit = fit_tasks(
            backlog,
            block.duration_minutes,
            target["strategy"],
            max_items=config.max_items,
            min_item_minutes=config.min_item_minutes,
            default_minutes=config.default_item_minutes,
        )

        changes = [
            ChangeDescriptor(
                type=ChangeType.ASSIGN,
                target=ChangeTarget.TASK,
                ref=item.task.id,
                fields={
                    "block_id": block.id,
                    "title": item.task.title,
                    "minutes": item.minutes,
                    "score": item.score,
                },
                reason=fit.reasoning,
            )
            for item in fit.items
        ]

        label = block.title or block.id
        if changes:
            titles = ", ".join(item.task.title for item in fit.items)
            summary = (
                f"Fill {label} ({fit.total_minutes} of {block.duration_minutes} min) with {titles}"
            )
        else:
            summary = f"No backlog tasks fit {label} ({block.duration_minutes} min)"
        return ProposalPayload(
            changes=changes,
            summary=summary,
            details={"block_id": block.id, "fit": fit.to_dict()},
        )

    async def apply_change(self, change: ChangeDescriptor, owner: OwnerContext) -> Any:
        if change.type is not ChangeType.ASSIGN or change.target is not ChangeTarget.TASK:
            raise ValidationError(
                f"fill-block cannot apply {change.type} changes to {change.target}"
            )
        block_id = change.fields.get("block_id") or owner.block_id
        if not change.ref or not block_id:
            raise ValidationError(f"assign change {change.id} needs a task and a block")
        return await self.tasks.assign_task_to_block(task_id=change.ref, block_id=block_id)
