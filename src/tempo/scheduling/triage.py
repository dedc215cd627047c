"""Importance/urgency scoring of inbox messages (Eisenhower matrix)."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from email.utils import parseaddr

from tempo.services.models import EmailMessage

QUADRANT_THRESHOLD = 60

_VIP_INDICATORS = ("ceo", "cto", "cfo", "president", "director", "manager", "boss")
_IMPORTANT_KEYWORDS = (
    "contract",
    "proposal",
    "invoice",
    "payment",
    "deadline",
    "urgent",
    "important",
    "critical",
    "meeting",
    "review",
)
_URGENT_KEYWORDS = (
    "today",
    "eod",
    "asap",
    "urgent",
    "immediately",
    "now",
    "deadline",
    "expires",
    "by end of",
)


class Quadrant(enum.StrEnum):
    DO_FIRST = "do_first"
    SCHEDULE = "schedule"
    DELEGATE = "delegate"
    DEFER = "defer"


# Minutes of attention each quadrant typically needs in a triage pass.
_PROCESSING_MINUTES = {
    Quadrant.DO_FIRST: 5,
    Quadrant.SCHEDULE: 3,
    Quadrant.DELEGATE: 2,
    Quadrant.DEFER: 1,
}


@dataclass(frozen=True)
class EmailScore:
    message: EmailMessage
    importance: int
    urgency: int
    quadrant: Quadrant

    @property
    def processing_minutes(self) -> int:
        return _PROCESSING_MINUTES[self.quadrant]

    @property
    def suggested_action(self) -> str:
        if self.quadrant is Quadrant.DO_FIRST:
            return "Respond immediately" if self.urgency > 80 else "Respond within 2 hours"
        if self.quadrant is Quadrant.SCHEDULE:
            return "Schedule for deep work session" if self.importance > 80 else "Add to focus time"
        if self.quadrant is Quadrant.DELEGATE:
            return "Quick template reply" if self.urgency > 80 else "Delegate or batch reply"
        return "Archive" if self.importance < 20 else "Review later"


def quadrant_for(importance: int, urgency: int, threshold: int = QUADRANT_THRESHOLD) -> Quadrant:
    important = importance >= threshold
    urgent = urgency >= threshold
    if important and urgent:
        return Quadrant.DO_FIRST
    if important:
        return Quadrant.SCHEDULE
    if urgent:
        return Quadrant.DELEGATE
    return Quadrant.DEFER


def _count_matches(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def score_email(message: EmailMessage, now: datetime) -> EmailScore:
    """Score *message* on importance and urgency (each 0-100).

    Importance starts at 30 and rises for senior senders, business keywords
    in the subject and replies.  Urgency starts at 20 and rises for recent
    messages, time-pressure keywords and same-day meetings; messages older
    than three days lose urgency.
    """
    subject = message.subject.lower()
    snippet = message.snippet.lower()
    display_name, address = parseaddr(message.sender)
    sender = f"{display_name} {address or message.sender}".lower()

    importance = 30
    if any(vip in sender for vip in _VIP_INDICATORS):
        importance += 25
    importance += min(_count_matches(subject, _IMPORTANT_KEYWORDS) * 10, 30)
    if subject.startswith("re:"):
        importance += 10

    urgency = 20
    age_hours = (now - message.received_at).total_seconds() / 3600
    if age_hours < 2:
        urgency += 30
    elif age_hours < 6:
        urgency += 20
    elif age_hours < 24:
        urgency += 10
    elif age_hours > 72:
        urgency -= 10
    urgent_hits = sum(1 for k in _URGENT_KEYWORDS if k in subject or k in snippet)
    urgency += min(urgent_hits * 15, 40)
    if "meeting" in subject and ("today" in subject or "tomorrow" in subject):
        urgency += 20

    importance = max(0, min(importance, 100))
    urgency = max(0, min(urgency, 100))
    return EmailScore(
        message=message,
        importance=importance,
        urgency=urgency,
        quadrant=quadrant_for(importance, urgency),
    )
