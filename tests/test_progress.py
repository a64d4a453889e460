"""Tests for progress accounting and workflow snapshots."""

import pytest
from conftest import make_context, make_plan, make_task

from pyconvoy.executor.progress import (
    ProgressSnapshot,
    percent_complete,
    snapshot_workflow,
)
from pyconvoy.models import TaskStatus, Workflow, WorkflowStatus


def _workflow() -> Workflow:
    plan = make_plan([make_task("a"), make_task("b"), make_task("c")])
    return Workflow.from_plan("wf-1", plan, make_context())


@pytest.mark.parametrize(
    "completed,total,expected",
    [(0, 0, 0), (0, 3, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (2, 5, 40), (1, 8, 13)],
)
def test_percent_complete(completed, total, expected):
    assert percent_complete(completed, total) == expected


def test_progress_snapshot_counts():
    workflow = _workflow()
    workflow.tasks["a"].status = TaskStatus.COMPLETED
    workflow.tasks["b"].status = TaskStatus.RUNNING

    counts = ProgressSnapshot.from_workflow(workflow)

    assert (counts.total, counts.pending, counts.running, counts.completed) == (3, 1, 1, 1)
    assert counts.percent == 33
    assert not counts.is_finished

    workflow.tasks["b"].status = TaskStatus.FAILED
    workflow.tasks["c"].status = TaskStatus.SKIPPED
    assert ProgressSnapshot.from_workflow(workflow).is_finished


def test_snapshot_is_detached():
    workflow = _workflow()
    snapshot = snapshot_workflow(workflow)

    workflow.tasks["a"].status = TaskStatus.COMPLETED
    workflow.status = WorkflowStatus.RUNNING

    assert snapshot.task("a").status is TaskStatus.PENDING
    assert snapshot.status is WorkflowStatus.PENDING
    assert snapshot.task("missing") is None


def test_snapshot_fingerprint_tracks_changes():
    workflow = _workflow()
    first = snapshot_workflow(workflow)

    assert snapshot_workflow(workflow).fingerprint == first.fingerprint

    workflow.tasks["c"].error = "Task c failed: boom"
    assert snapshot_workflow(workflow).fingerprint != first.fingerprint


def test_snapshot_task_fields():
    workflow = _workflow()
    workflow.tasks["b"].retry_count = 2

    snapshot = snapshot_workflow(workflow)

    assert [t.id for t in snapshot.tasks] == ["a", "b", "c"]
    assert snapshot.task("b").retry_count == 2
    assert snapshot.task("b").kind == "code_generation"
    assert snapshot.project_id == "proj-1"
