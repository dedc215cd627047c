"""Two-phase planning workflows."""

from tempo.workflows.base import (
    ChangeOutcome,
    Confirmation,
    OutcomeStatus,
    WorkflowOrchestrator,
    WorkflowPhase,
    WorkflowResponse,
)
from tempo.workflows.fill_block import FillBlockWorkflow
from tempo.workflows.schedule_day import ScheduleDayWorkflow
from tempo.workflows.triage_emails import TriageEmailsWorkflow

WORKFLOW_TYPES: dict[str, type[WorkflowOrchestrator]] = {
    cls.workflow_type: cls
    for cls in (ScheduleDayWorkflow, FillBlockWorkflow, TriageEmailsWorkflow)
}

__all__ = [
    "WORKFLOW_TYPES",
    "ChangeOutcome",
    "Confirmation",
    "FillBlockWorkflow",
    "OutcomeStatus",
    "ScheduleDayWorkflow",
    "TriageEmailsWorkflow",
    "WorkflowOrchestrator",
    "WorkflowPhase",
    "WorkflowResponse",
]
