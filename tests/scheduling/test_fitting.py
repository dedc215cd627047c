"""Tests for tempo.scheduling.fitting: scoring and greedy fill."""

from __future__ import annotations

import pytest

from tempo.scheduling.fitting import fit_tasks, score_task
from tempo.scheduling.models import FitStrategy
from tests._fakes import task

pytestmark = pytest.mark.unit


class TestScoreTask:
    @pytest.mark.parametrize(
        ("priority", "expected"), [("high", 100), ("medium", 50), ("low", 10)]
    )
    def test_priority_strategy(self, priority, expected):
        assert score_task(task("t", priority, 45), 90, "priority") == expected

    def test_quick_wins_prefers_short_tasks(self):
        short = score_task(task("s", "low", 15), 60, FitStrategy.QUICK_WINS)
        long = score_task(task("l", "low", 45), 60, FitStrategy.QUICK_WINS)
        assert short == pytest.approx(87.5)
        assert long == pytest.approx(62.5)
        assert score_task(task("h", "high", 15), 60, "quick_wins") == pytest.approx(107.5)

    @pytest.mark.parametrize(
        ("minutes", "expected"),
        [
            (30, 50),  # 33% of the block, no utilisation bonus
            (45, 70),  # 50%, partial bonus
            (60, 80),  # 67%, full bonus
            (90, 70),  # 100%, partial bonus
        ],
    )
    def test_mixed_utilisation_bonus(self, minutes, expected):
        assert score_task(task("t", "high", minutes), 90, "mixed") == expected

    def test_missing_estimate_uses_default(self):
        assert score_task(task("t", "medium", None), 60, "mixed") == 50

    def test_unknown_strategy_raises(self):
        with pytest.raises(ValueError):
            score_task(task("t"), 60, "random")


class TestFitTasks:
    def test_mixed_ninety_minute_block(self):
        # mixed scores: A = 50 + 0, B = 30 + 20, C = 10 + 0
        a = task("A", "high", 30)
        b = task("B", "medium", 45)
        c = task("C", "low", 20)

        result = fit_tasks([c, b, a], 90, "mixed")

        assert [item.task.id for item in result.items] == ["A", "B"]
        assert [item.score for item in result.items] == [50, 50]
        assert result.total_minutes == 75
        assert result.remaining_minutes == 15
        assert result.reasoning == "Balanced mix of priority and efficient time use"

    def test_ties_prefer_shorter_then_title(self):
        tasks = [task("long", "high", 40), task("b-short", "high", 20), task("a-short", "high", 20)]
        result = fit_tasks(tasks, 60, "priority", max_items=2)
        assert [item.task.id for item in result.items] == ["a-short", "b-short"]

    def test_item_cap(self):
        tasks = [task(f"t{i}", "medium", 10) for i in range(6)]
        result = fit_tasks(tasks, 120, "quick_wins")
        assert len(result.items) == 3

    def test_stops_below_minimum_item_size(self):
        tasks = [task("big", "high", 50), task("tiny", "medium", 5)]
        result = fit_tasks(tasks, 60, "priority")
        assert [item.task.id for item in result.items] == ["big"]
        assert result.reasoning == "Highest priority task that fits the time slot"

    def test_skips_oversized_and_completed(self):
        tasks = [
            task("huge", "high", 240),
            task("done", "high", 30, status="completed"),
            task("ok", "low", 30),
        ]
        result = fit_tasks(tasks, 60, "priority")
        assert [item.task.id for item in result.items] == ["ok"]

    def test_empty_backlog_is_not_an_error(self):
        result = fit_tasks([], 60)
        assert result.items == []
        assert result.reasoning == "No backlog tasks fit in 60 minutes"
        assert result.to_dict()["tasks"] == []

    def test_no_time_available(self):
        result = fit_tasks([task("t")], 0)
        assert result.items == []
        assert result.reasoning == "No time available"
