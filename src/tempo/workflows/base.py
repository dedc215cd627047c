"""Two-phase propose/confirm/execute orchestration shared by all workflows.

Phase 1 (no confirmation): read current state through the resilient
services, compute a proposal with the scheduling heuristics, store it and
return it together with its id.  Nothing is mutated.

Phase 2 (confirmation): resolve the stored proposal, consume it atomically
and apply each change through the resilient services.  Every change gets
its own outcome (``applied``, ``queued`` or ``failed:<code>``); a failing
change never stops the ones after it.

``run`` never raises for domain failures.  Errors come back as a
``WorkflowResponse`` with ``success=False`` and a structured ``error``.
"""

from __future__ import annotations

import abc
import enum
import logging
import uuid
from typing import Any, ClassVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from tempo.config import SchedulingConfig
from tempo.core.logging import set_owner_context
from tempo.errors import QueuedError, StaleProposalError, TempoError, ValidationError
from tempo.proposals.models import ChangeDescriptor, OwnerContext, Proposal, ProposalPayload
from tempo.proposals.store import ProposalStore
from tempo.services.base import CalendarService, MailboxService, TaskService

logger = logging.getLogger(__name__)

STALE_PROPOSAL_MESSAGE = (
    "Proposal not found, expired or already used; re-run the workflow to get a fresh proposal"
)


class WorkflowPhase(enum.StrEnum):
    PROPOSAL = "proposal"
    COMPLETED = "completed"


class OutcomeStatus(enum.StrEnum):
    APPLIED = "applied"
    QUEUED = "queued"
    FAILED = "failed"


class Confirmation(BaseModel):
    """The user's answer to a proposal."""

    model_config = ConfigDict(extra="forbid")

    proposal_id: uuid.UUID | None = None
    approved: bool = True
    modified_selection: list[str | dict[str, Any]] | None = None


class ChangeOutcome(BaseModel):
    """Result of applying one change."""

    change_id: str
    type: str
    target: str
    ref: str | None = None
    status: OutcomeStatus
    reason: str | None = None
    operation_id: str | None = None
    result: dict[str, Any] | None = None

    @property
    def label(self) -> str:
        """``applied`` / ``queued`` / ``failed:<reason>``."""
        if self.status is OutcomeStatus.FAILED:
            return f"failed:{self.reason}"
        return self.status.value


class WorkflowResponse(BaseModel):
    success: bool
    workflow_type: str
    phase: WorkflowPhase
    proposal_id: uuid.UUID | None = None
    payload: ProposalPayload | None = None
    summary: str = ""
    outcomes: list[ChangeOutcome] = Field(default_factory=list)
    error: dict[str, Any] | None = None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)


def _dump(result: Any) -> dict[str, Any] | None:
    if result is None:
        return None
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, dict):
        return result
    return {"value": result}


class WorkflowOrchestrator(abc.ABC):
    """Base class for the schedule-day, fill-block and triage-emails workflows.

    Subclasses implement ``validate_target``, ``analyze``, ``build_changes``
    and ``apply_change``; the base class owns the proposal lifecycle.
    """

    workflow_type: ClassVar[str]

    def __init__(
        self,
        *,
        store: ProposalStore,
        calendar: CalendarService,
        tasks: TaskService,
        mailbox: MailboxService,
        scheduling: SchedulingConfig | None = None,
    ) -> None:
        self.store = store
        self.calendar = calendar
        self.tasks = tasks
        self.mailbox = mailbox
        self.scheduling = scheduling or SchedulingConfig()

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def validate_target(self, target: dict[str, Any]) -> dict[str, Any]:
        """Return the normalised target or raise ``ValidationError``."""

    def owner_context(self, owner_id: str, target: dict[str, Any]) -> OwnerContext:
        return OwnerContext(user_id=owner_id)

    def lookup_filters(self, target: dict[str, Any]) -> dict[str, Any]:
        """Filters for ``find_latest`` when a confirmation carries no proposal id."""
        return {}

    @abc.abstractmethod
    async def analyze(self, target: dict[str, Any]) -> Any:
        """Read current state needed to build a proposal."""

    @abc.abstractmethod
    def build_changes(self, analysis: Any, target: dict[str, Any]) -> ProposalPayload:
        """Compute the proposal payload from the analysis."""

    @abc.abstractmethod
    async def apply_change(self, change: ChangeDescriptor, owner: OwnerContext) -> Any:
        """Apply one change through the resilient services."""

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        owner_id: str,
        target: dict[str, Any] | None = None,
        confirmation: Confirmation | dict[str, Any] | None = None,
    ) -> WorkflowResponse:
        set_owner_context(owner_id)
        target = dict(target or {})
        try:
            if confirmation is None:
                return await self._propose(owner_id, target)
            if isinstance(confirmation, dict):
                try:
                    confirmation = Confirmation.model_validate(confirmation)
                except pydantic.ValidationError as exc:
                    raise ValidationError(f"Invalid confirmation: {exc}") from exc
            return await self._execute(owner_id, target, confirmation)
        except TempoError as exc:
            logger.warning("%s workflow failed for %s: %s", self.workflow_type, owner_id, exc)
            phase = WorkflowPhase.PROPOSAL if confirmation is None else WorkflowPhase.COMPLETED
            return self.failure(exc, phase)

    def failure(
        self, error: TempoError, phase: WorkflowPhase = WorkflowPhase.PROPOSAL
    ) -> WorkflowResponse:
        return WorkflowResponse(
            success=False,
            workflow_type=self.workflow_type,
            phase=phase,
            summary=error.message,
            error=error.to_dict(),
        )

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    async def _propose(self, owner_id: str, target: dict[str, Any]) -> WorkflowResponse:
        target = self.validate_target(target)
        analysis = await self.analyze(target)
        payload = self.build_changes(analysis, target)

        if not payload.changes:
            logger.info("%s produced no changes for %s", self.workflow_type, owner_id)
            return WorkflowResponse(
                success=True,
                workflow_type=self.workflow_type,
                phase=WorkflowPhase.PROPOSAL,
                payload=payload,
                summary=payload.summary or "Nothing to change",
            )

        owner = self.owner_context(owner_id, target)
        proposal_id = await self.store.create(self.workflow_type, owner, payload)
        return WorkflowResponse(
            success=True,
            workflow_type=self.workflow_type,
            phase=WorkflowPhase.PROPOSAL,
            proposal_id=proposal_id,
            payload=payload,
            summary=payload.summary,
        )

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    async def _resolve(
        self, owner_id: str, target: dict[str, Any], confirmation: Confirmation
    ) -> Proposal:
        if confirmation.proposal_id is None:
            proposal = await self.store.find_latest(
                owner_id, self.workflow_type, **self.lookup_filters(target)
            )
        else:
            proposal = await self.store.get(confirmation.proposal_id)
        if (
            proposal is None
            or not proposal.belongs_to(owner_id)
            or proposal.workflow_type != self.workflow_type
        ):
            raise StaleProposalError(STALE_PROPOSAL_MESSAGE)
        return proposal

    def select_changes(
        self,
        payload: ProposalPayload,
        selection: list[str | dict[str, Any]] | None,
    ) -> list[ChangeDescriptor]:
        """Resolve a user-edited selection against the stored payload."""
        if selection is None:
            return list(payload.changes)
        by_id = {change.id: change for change in payload.changes}
        chosen: list[ChangeDescriptor] = []
        for item in selection:
            if isinstance(item, str):
                if item not in by_id:
                    raise ValidationError(f"Unknown change id {item!r} in selection")
                chosen.append(by_id[item])
                continue
            try:
                chosen.append(ChangeDescriptor.model_validate(item))
            except pydantic.ValidationError as exc:
                raise ValidationError(f"Invalid change in selection: {exc}") from exc
        return chosen

    async def _execute(
        self, owner_id: str, target: dict[str, Any], confirmation: Confirmation
    ) -> WorkflowResponse:
        proposal = await self._resolve(owner_id, target, confirmation)

        if not confirmation.approved:
            if not await self.store.delete(proposal.id, owner=owner_id):
                raise StaleProposalError(STALE_PROPOSAL_MESSAGE)
            return WorkflowResponse(
                success=True,
                workflow_type=self.workflow_type,
                phase=WorkflowPhase.COMPLETED,
                proposal_id=proposal.id,
                summary="Proposal cancelled; no changes were made",
            )

        changes = self.select_changes(proposal.payload, confirmation.modified_selection)

        consumed = await self.store.consume(proposal.id, owner=owner_id)
        if consumed is None:
            raise StaleProposalError(STALE_PROPOSAL_MESSAGE)

        outcomes = [await self._apply_one(change, consumed.owner) for change in changes]
        response = WorkflowResponse(
            success=True,
            workflow_type=self.workflow_type,
            phase=WorkflowPhase.COMPLETED,
            proposal_id=consumed.id,
            payload=consumed.payload,
            outcomes=outcomes,
        )
        response.summary = (
            f"Applied {response.count(OutcomeStatus.APPLIED)} of {len(outcomes)} change(s); "
            f"{response.count(OutcomeStatus.QUEUED)} queued, "
            f"{response.count(OutcomeStatus.FAILED)} failed"
        )
        logger.info(
            "%s proposal %s executed: %s", self.workflow_type, consumed.id, response.summary
        )
        return response

    async def _apply_one(self, change: ChangeDescriptor, owner: OwnerContext) -> ChangeOutcome:
        outcome = ChangeOutcome(
            change_id=change.id,
            type=change.type.value,
            target=change.target.value,
            ref=change.ref,
            status=OutcomeStatus.APPLIED,
        )
        try:
            outcome.result = _dump(await self.apply_change(change, owner))
        except QueuedError as exc:
            outcome.status = OutcomeStatus.QUEUED
            outcome.operation_id = exc.operation_id
            outcome.reason = exc.code
        except TempoError as exc:
            logger.warning("Change %s (%s) failed: %s", change.id, change.type, exc)
            outcome.status = OutcomeStatus.FAILED
            outcome.reason = exc.code
        except pydantic.ValidationError as exc:
            logger.warning("Change %s (%s) has invalid fields: %s", change.id, change.type, exc)
            outcome.status = OutcomeStatus.FAILED
            outcome.reason = ValidationError.code
        except Exception as exc:
            logger.error("Change %s (%s) failed unexpectedly: %s", change.id, change.type, exc)
            outcome.status = OutcomeStatus.FAILED
            outcome.reason = "internal_error"
        return outcome
