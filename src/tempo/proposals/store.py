"""In-memory proposal store with TTL expiry and at-most-once consumption.

Proposals live for ``ttl_minutes`` (default 120).  Expiry is evaluated
lazily on every lookup against the injected clock, so a proposal that has
expired is never returned again even if ``purge_expired`` has not run.
Consumed entries stay until their expiry and are swept on the next
``create`` or owner query.

``consume`` transitions a proposal from pending to consumed under a
per-proposal ``asyncio.Lock``; of any number of concurrent consumers exactly
one receives the proposal and the others get ``None``.  Lookups never raise
for missing, expired, consumed or foreign proposals; they return ``None``
(or ``False``) and the caller decides how to report it.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import uuid
import weakref
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from tempo.core.metrics import TempoMetrics
from tempo.proposals.models import OwnerContext, Proposal, ProposalPayload, ProposalStatus

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 120

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ProposalStore:
    """Process-local store of pending proposals.

    Parameters
    ----------
    ttl_minutes:
        Lifetime of a proposal from creation.
    clock:
        Returns the current time; tests inject a controllable clock.
    """

    def __init__(
        self,
        ttl_minutes: int = DEFAULT_TTL_MINUTES,
        *,
        clock: Clock | None = None,
        metrics: TempoMetrics | None = None,
    ) -> None:
        if ttl_minutes <= 0:
            raise ValueError("ttl_minutes must be positive")
        self.ttl = timedelta(minutes=ttl_minutes)
        self._clock = clock or _utcnow
        self._metrics = metrics or TempoMetrics()
        self._proposals: dict[uuid.UUID, Proposal] = {}
        self._sequence: dict[uuid.UUID, int] = {}
        self._counter = itertools.count()
        self._locks: weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._locks_guard = asyncio.Lock()

    def now(self) -> datetime:
        return self._clock()

    async def _get_lock(self, proposal_id: uuid.UUID) -> asyncio.Lock:
        """Return a process-local lock for the given proposal ID."""
        async with self._locks_guard:
            lock = self._locks.get(proposal_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[proposal_id] = lock
            return lock

    def _drop(self, proposal_id: uuid.UUID) -> None:
        self._proposals.pop(proposal_id, None)
        self._sequence.pop(proposal_id, None)

    def _live(self, proposal_id: uuid.UUID) -> Proposal | None:
        """Return the proposal if it is still pending; evict it once expired."""
        proposal = self._proposals.get(proposal_id)
        if proposal is None:
            return None
        status = proposal.status(self.now())
        if status is ProposalStatus.EXPIRED:
            logger.debug("Proposal %s expired; evicting", proposal_id)
            self._drop(proposal_id)
            return None
        if status is ProposalStatus.CONSUMED:
            return None
        return proposal

    def _sweep(self) -> int:
        """Drop every entry past its expiry, consumed or not."""
        now = self.now()
        stale = [pid for pid, p in self._proposals.items() if now >= p.expires_at]
        for proposal_id in stale:
            self._drop(proposal_id)
        return len(stale)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create(
        self,
        workflow_type: str,
        owner: OwnerContext,
        payload: ProposalPayload,
    ) -> uuid.UUID:
        """Store a new pending proposal and return its id."""
        self._sweep()
        now = self.now()
        proposal = Proposal(
            id=uuid.uuid4(),
            workflow_type=workflow_type,
            owner=owner,
            payload=payload,
            created_at=now,
            expires_at=now + self.ttl,
        )
        self._proposals[proposal.id] = proposal
        self._sequence[proposal.id] = next(self._counter)
        self._metrics.record_proposal_created(workflow_type)
        logger.info(
            "Stored %s proposal %s for %s with %d change(s), expires %s",
            workflow_type,
            proposal.id,
            owner.user_id,
            len(payload.changes),
            proposal.expires_at.isoformat(),
        )
        return proposal.id

    async def get(self, proposal_id: uuid.UUID) -> Proposal | None:
        """Return the pending proposal, or None when missing, expired or consumed."""
        return self._live(proposal_id)

    async def consume(
        self,
        proposal_id: uuid.UUID,
        owner: OwnerContext | str | None = None,
    ) -> Proposal | None:
        """Atomically mark a pending proposal consumed and return it.

        Returns None when the proposal is missing, expired, already consumed,
        or owned by someone other than *owner*.
        """
        lock = await self._get_lock(proposal_id)
        async with lock:
            proposal = self._live(proposal_id)
            if proposal is None:
                logger.info("Proposal %s is not available for consumption", proposal_id)
                return None
            if not proposal.belongs_to(owner):
                logger.warning("Proposal %s requested by a different owner; refusing", proposal_id)
                return None
            proposal.consumed_at = self.now()

        self._metrics.record_proposal_consumed(proposal.workflow_type)
        logger.info("Consumed %s proposal %s", proposal.workflow_type, proposal_id)
        return proposal

    async def delete(
        self,
        proposal_id: uuid.UUID,
        owner: OwnerContext | str | None = None,
    ) -> bool:
        """Discard a pending proposal.  Returns False when there is nothing to discard."""
        lock = await self._get_lock(proposal_id)
        async with lock:
            proposal = self._live(proposal_id)
            if proposal is None or not proposal.belongs_to(owner):
                return False
            self._drop(proposal_id)

        logger.info("Discarded %s proposal %s", proposal.workflow_type, proposal_id)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _pending_for(self, user_id: str) -> list[Proposal]:
        self._sweep()
        pending = []
        for proposal_id in list(self._proposals):
            proposal = self._live(proposal_id)
            if proposal is not None and proposal.owner.user_id == user_id:
                pending.append(proposal)
        pending.sort(key=lambda p: (p.created_at, self._sequence[p.id]), reverse=True)
        return pending

    async def find_latest(
        self,
        user_id: str,
        workflow_type: str,
        date: str | None = None,
        block_id: str | None = None,
    ) -> Proposal | None:
        """Return the most recent pending proposal matching the filters."""
        for proposal in self._pending_for(user_id):
            if proposal.workflow_type != workflow_type:
                continue
            if date is not None and proposal.owner.date != date:
                continue
            if block_id is not None and proposal.owner.block_id != block_id:
                continue
            logger.debug("Latest %s proposal for %s is %s", workflow_type, user_id, proposal.id)
            return proposal
        return None

    async def list_recent(self, user_id: str, limit: int = 5) -> list[Proposal]:
        """Return up to *limit* pending proposals for *user_id*, newest first."""
        return self._pending_for(user_id)[:limit]

    async def purge_expired(self) -> int:
        """Remove every entry past its expiry, consumed or not.  Returns the count."""
        purged = self._sweep()
        if purged:
            logger.info("Purged %d expired proposal(s)", purged)
        return purged

    def stats(self) -> dict[str, Any]:
        now = self.now()
        counts = {status.value: 0 for status in ProposalStatus}
        for proposal in self._proposals.values():
            counts[proposal.status(now).value] += 1
        return {"total": len(self._proposals), **counts}
