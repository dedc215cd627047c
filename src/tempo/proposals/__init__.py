"""Proposal models and the in-memory proposal store."""

from tempo.proposals.models import (
    ChangeDescriptor,
    ChangeTarget,
    ChangeType,
    OwnerContext,
    Proposal,
    ProposalPayload,
    ProposalStatus,
)
from tempo.proposals.store import ProposalStore

__all__ = [
    "ChangeDescriptor",
    "ChangeTarget",
    "ChangeType",
    "OwnerContext",
    "Proposal",
    "ProposalPayload",
    "ProposalStatus",
    "ProposalStore",
]
