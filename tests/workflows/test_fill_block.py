"""Tests for the fill-block workflow: partial application, queueing and selection edits."""

from __future__ import annotations

import pytest

from tempo.workflows.base import OutcomeStatus
from tests._fakes import block, task

pytestmark = pytest.mark.unit

TARGET = {"block_id": "b1", "strategy": "priority"}


@pytest.fixture
def two_hour_block(calendar):
    b = block("b1", (9, 0), (11, 0), type="work", title="Deep Work Block")
    calendar.blocks[b.id] = b
    return b


@pytest.fixture
def backlog(tasks):
    for t in (task("A", "high", 30), task("B", "high", 30), task("C", "high", 30)):
        tasks.tasks[t.id] = t
    return tasks


async def _propose(assistant, target=TARGET):
    response = await assistant.run_workflow("fill-block", "alice", target)
    assert response.success is True, response.error
    return response


class TestPropose:
    async def test_assigns_up_to_three_tasks(self, assistant, two_hour_block, backlog):
        response = await _propose(assistant)
        changes = response.payload.changes
        assert [c.ref for c in changes] == ["A", "B", "C"]
        assert all(c.fields["block_id"] == "b1" for c in changes)
        assert response.summary == "Fill Deep Work Block (90 of 120 min) with A, B, C"
        assert response.payload.details["fit"]["total_score"] == 300

    async def test_unknown_block_is_not_found(self, assistant, backlog):
        response = await assistant.run_workflow("fill-block", "alice", {"block_id": "nope"})
        assert response.success is False
        assert response.error["code"] == "not_found"

    async def test_unknown_strategy(self, assistant, two_hour_block):
        response = await assistant.run_workflow(
            "fill-block", "alice", {"block_id": "b1", "strategy": "random"}
        )
        assert response.error["code"] == "validation_error"

    async def test_empty_backlog_is_a_valid_empty_proposal(self, assistant, two_hour_block):
        response = await _propose(assistant)
        assert response.proposal_id is None
        assert response.payload.changes == []
        assert response.summary == "No backlog tasks fit Deep Work Block (120 min)"


class TestExecute:
    async def test_permanent_failure_does_not_stop_later_changes(
        self, assistant, two_hour_block, backlog
    ):
        proposed = await _propose(assistant)
        del backlog.tasks["B"]

        response = await assistant.run_workflow(
            "fill-block", "alice", TARGET, {"proposal_id": str(proposed.proposal_id)}
        )

        assert response.success is True
        assert [o.label for o in response.outcomes] == ["applied", "failed:not_found", "applied"]
        assert response.summary == "Applied 2 of 3 change(s); 0 queued, 1 failed"
        assert backlog.tasks["A"].block_id == "b1"
        assert backlog.tasks["C"].block_id == "b1"
        assert len(assistant.queue) == 0

    async def test_connectivity_loss_queues_changes_and_replays(
        self, assistant, two_hour_block, backlog, sleep
    ):
        proposed = await _propose(assistant)
        backlog.script.fail_always("assign_task_to_block", ConnectionResetError("offline"))

        response = await assistant.run_workflow(
            "fill-block", "alice", TARGET, {"proposal_id": str(proposed.proposal_id)}
        )

        assert response.success is True
        assert response.count(OutcomeStatus.QUEUED) == 3
        assert all(o.operation_id for o in response.outcomes)
        assert response.summary == "Applied 0 of 3 change(s); 3 queued, 0 failed"
        assert backlog.script.count("assign_task_to_block") == 9
        assert sleep.delays == [1.0, 2.0] * 3
        assert [op.id for op in assistant.queue.snapshot()] == [
            o.operation_id for o in response.outcomes
        ]

        backlog.script.heal()
        report = await assistant.on_reconnect()

        assert len(report.applied) == 3
        assert len(assistant.queue) == 0
        assert {t.block_id for t in backlog.tasks.values()} == {"b1"}

    async def test_selection_subset(self, assistant, two_hour_block, backlog):
        proposed = await _propose(assistant)
        keep = proposed.payload.changes[2].id

        response = await assistant.run_workflow(
            "fill-block",
            "alice",
            TARGET,
            {"proposal_id": str(proposed.proposal_id), "modified_selection": [keep]},
        )

        assert [o.ref for o in response.outcomes] == ["C"]
        assert backlog.tasks["A"].block_id is None
        assert backlog.tasks["C"].block_id == "b1"

    async def test_edited_change_descriptor(self, assistant, two_hour_block, backlog):
        proposed = await _propose(assistant)
        edited = {
            "type": "assign",
            "target": "task",
            "ref": "B",
            "fields": {"block_id": "b1"},
        }

        response = await assistant.run_workflow(
            "fill-block",
            "alice",
            TARGET,
            {"proposal_id": str(proposed.proposal_id), "modified_selection": [edited]},
        )

        assert [o.label for o in response.outcomes] == ["applied"]
        assert backlog.tasks["B"].block_id == "b1"

    async def test_empty_selection_applies_nothing(self, assistant, two_hour_block, backlog):
        proposed = await _propose(assistant)
        response = await assistant.run_workflow(
            "fill-block",
            "alice",
            TARGET,
            {"proposal_id": str(proposed.proposal_id), "modified_selection": []},
        )
        assert response.success is True
        assert response.outcomes == []
        assert response.summary == "Applied 0 of 0 change(s); 0 queued, 0 failed"
        assert await assistant.store.get(proposed.proposal_id) is None

    async def test_unknown_change_id_leaves_proposal_pending(
        self, assistant, two_hour_block, backlog
    ):
        proposed = await _propose(assistant)
        response = await assistant.run_workflow(
            "fill-block",
            "alice",
            TARGET,
            {"proposal_id": str(proposed.proposal_id), "modified_selection": ["bogus"]},
        )
        assert response.success is False
        assert response.error["code"] == "validation_error"
        assert await assistant.store.get(proposed.proposal_id) is not None

    async def test_invalid_edited_change_fails_only_that_change(
        self, assistant, calendar, two_hour_block, backlog
    ):
        proposed = await _propose(assistant)
        ids = proposed.payload.change_ids()
        wrong_kind = {"type": "delete", "target": "time_block", "ref": "b1"}

        response = await assistant.run_workflow(
            "fill-block",
            "alice",
            TARGET,
            {
                "proposal_id": str(proposed.proposal_id),
                "modified_selection": [ids[0], wrong_kind],
            },
        )

        assert [o.label for o in response.outcomes] == ["applied", "failed:validation_error"]
        assert "b1" in calendar.blocks

    async def test_confirm_by_block_lookup(self, assistant, two_hour_block, backlog):
        await _propose(assistant)
        response = await assistant.run_workflow(
            "fill-block", "alice", {"block_id": "b1"}, {"approved": True}
        )
        assert response.count(OutcomeStatus.APPLIED) == 3
