"""Tests for tempo.scheduling.triage: Eisenhower scoring of inbox messages."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tempo.scheduling.triage import Quadrant, quadrant_for, score_email
from tests._fakes import at, email

pytestmark = pytest.mark.unit

NOW = at(8)


class TestQuadrantFor:
    @pytest.mark.parametrize(
        ("importance", "urgency", "expected"),
        [
            (60, 60, Quadrant.DO_FIRST),
            (90, 10, Quadrant.SCHEDULE),
            (59, 60, Quadrant.DELEGATE),
            (59, 59, Quadrant.DEFER),
        ],
    )
    def test_threshold(self, importance, urgency, expected):
        assert quadrant_for(importance, urgency) is expected


class TestScoreEmail:
    def test_urgent_message_from_executive(self):
        message = email(
            "m1",
            sender="ceo@corp.example",
            subject="Urgent: contract review today",
            received_at=NOW - timedelta(minutes=30),
        )
        score = score_email(message, NOW)
        assert (score.importance, score.urgency) == (85, 80)
        assert score.quadrant is Quadrant.DO_FIRST
        assert score.suggested_action == "Respond within 2 hours"
        assert score.processing_minutes == 5

    def test_important_reply_without_time_pressure(self):
        message = email(
            "m2",
            sender="boss@corp.example",
            subject="Re: Q3 proposal",
            received_at=NOW - timedelta(hours=10),
        )
        score = score_email(message, NOW)
        assert (score.importance, score.urgency) == (75, 30)
        assert score.quadrant is Quadrant.SCHEDULE

    def test_urgent_but_routine(self):
        message = email(
            "m3",
            sender="ops@corp.example",
            subject="Server restart asap",
            received_at=NOW - timedelta(minutes=10),
        )
        score = score_email(message, NOW)
        assert (score.importance, score.urgency) == (30, 65)
        assert score.quadrant is Quadrant.DELEGATE

    def test_stale_newsletter_is_deferred(self):
        message = email(
            "m4",
            sender="deals@shop.example",
            subject="Weekly deals",
            received_at=NOW - timedelta(days=4),
        )
        score = score_email(message, NOW)
        assert (score.importance, score.urgency) == (30, 10)
        assert score.quadrant is Quadrant.DEFER
        assert score.suggested_action == "Review later"

    def test_scores_are_clamped(self):
        message = email(
            "m5",
            sender="The President <president@corp.example>",
            subject="Re: urgent critical deadline contract payment meeting today",
            snippet="asap, immediately, expires eod",
            received_at=NOW,
        )
        score = score_email(message, NOW)
        assert score.importance == 95
        assert score.urgency == 100
