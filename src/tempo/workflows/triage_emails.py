"""triage-emails: sort unread mail into the Eisenhower quadrants."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from tempo.errors import ValidationError
from tempo.proposals.models import (
    ChangeDescriptor,
    ChangeTarget,
    ChangeType,
    OwnerContext,
    ProposalPayload,
)
from tempo.scheduling.triage import EmailScore, Quadrant, score_email
from tempo.services.models import TaskCreate, TaskPriority
from tempo.workflows.base import WorkflowOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGES = 20
MAX_MESSAGES_LIMIT = 100
REPLY_LABEL = "needs-reply"

# Task priority and estimate for the quadrants that become tasks.
_TASK_SETTINGS = {
    Quadrant.DO_FIRST: (TaskPriority.high, 5),
    Quadrant.SCHEDULE: (TaskPriority.medium, 15),
}


def _change_for(score: EmailScore) -> ChangeDescriptor:
    message = score.message
    reason = f"{score.suggested_action} (importance {score.importance}, urgency {score.urgency})"

    if score.quadrant in _TASK_SETTINGS:
        priority, minutes = _TASK_SETTINGS[score.quadrant]
        return ChangeDescriptor(
            type=ChangeType.CREATE,
            target=ChangeTarget.TASK,
            fields={
                "title": f"Reply: {message.subject or message.sender}",
                "priority": priority.value,
                "estimated_minutes": minutes,
                "source_email_id": message.id,
            },
            reason=reason,
        )

    if score.quadrant is Quadrant.DELEGATE:
        fields: dict[str, Any] = {"label": REPLY_LABEL}
    else:
        fields = {"archive": True}
    return ChangeDescriptor(
        type=ChangeType.UPDATE,
        target=ChangeTarget.EMAIL,
        ref=message.id,
        fields=fields,
        reason=reason,
    )


class TriageEmailsWorkflow(WorkflowOrchestrator):
    workflow_type = "triage-emails"

    def validate_target(self, target: dict[str, Any]) -> dict[str, Any]:
        raw = target.get("max_messages", DEFAULT_MAX_MESSAGES)
        try:
            max_messages = int(raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"max_messages must be an integer, got {raw!r}") from exc
        if not 1 <= max_messages <= MAX_MESSAGES_LIMIT:
            raise ValidationError(f"max_messages must be between 1 and {MAX_MESSAGES_LIMIT}")
        return {"max_messages": max_messages}

    async def analyze(self, target: dict[str, Any]) -> list[EmailScore]:
        messages = await self.mailbox.list_unread(limit=target["max_messages"])
        now = self.store.now()
        return [score_email(message, now) for message in messages[: target["max_messages"]]]

    def build_changes(self, analysis: list[EmailScore], target: dict[str, Any]) -> ProposalPayload:
        order = list(Quadrant)
        ranked = sorted(
            analysis,
            key=lambda s: (order.index(s.quadrant), -(s.importance + s.urgency)),
        )
        changes = [_change_for(score) for score in ranked]
        counts = Counter(score.quadrant for score in ranked)

        if changes:
            summary = (
                f"Triage {len(changes)} message(s): "
                + ", ".join(f"{counts[q]} {q.value.replace('_', ' ')}" for q in Quadrant)
            )
        else:
            summary = "Inbox has no unread messages"
        return ProposalPayload(
            changes=changes,
            summary=summary,
            details={
                "quadrants": {q.value: counts[q] for q in Quadrant},
                "processing_minutes": sum(score.processing_minutes for score in ranked),
                "scores": [
                    {
                        "message_id": score.message.id,
                        "importance": score.importance,
                        "urgency": score.urgency,
                        "quadrant": score.quadrant.value,
                    }
                    for score in ranked
                ],
            },
        )

    async def apply_change(self, change: ChangeDescriptor, owner: OwnerContext) -> Any:
        if change.target is ChangeTarget.TASK and change.type is ChangeType.CREATE:
            payload = TaskCreate.model_validate(change.fields)
            return await self.tasks.create_task(payload=payload)

        if change.target is ChangeTarget.EMAIL and change.type is ChangeType.UPDATE:
            if not change.ref:
                raise ValidationError(f"email change {change.id} has no message reference")
            if change.fields.get("archive"):
                await self.mailbox.archive_message(message_id=change.ref)
                return None
            label = change.fields.get("label")
            if label:
                return await self.mailbox.label_message(message_id=change.ref, label=str(label))
            raise ValidationError(f"email change {change.id} has nothing to update")

        raise ValidationError(
            f"triage-emails cannot apply {change.type} changes to {change.target}"
        )
