"""Progress aggregation and read-only workflow snapshots.

Snapshots are detached from the live workflow: callers can hold on to
them while the executor keeps mutating tasks.
"""

from __future__ import annotations

import pickle
from dataclasses import dataclass
from datetime import datetime

import xxhash

from pyconvoy.models import TaskStatus, Workflow, WorkflowStatus


def percent_complete(completed: int, total: int) -> int:
    """completed / total as a percentage rounded half up, with 0 for an empty workflow."""
    if total == 0:
        return 0
    # Integer arithmetic: round() would send 12.5 to 12
    return (completed * 200 + total) // (2 * total)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Task counts of one workflow at a point in time."""

    total: int
    pending: int
    running: int
    completed: int
    failed: int
    skipped: int

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> ProgressSnapshot:
        counts = {status: 0 for status in TaskStatus}
        for task in workflow.tasks.values():
            counts[task.status] += 1

        return cls(
            total=workflow.total_tasks,
            pending=counts[TaskStatus.PENDING],
            running=counts[TaskStatus.RUNNING],
            completed=counts[TaskStatus.COMPLETED],
            failed=counts[TaskStatus.FAILED],
            skipped=counts[TaskStatus.SKIPPED],
        )

    @property
    def percent(self) -> int:
        return percent_complete(self.completed, self.total)

    @property
    def is_finished(self) -> bool:
        """True when no task is pending or running."""
        return self.pending == 0 and self.running == 0


@dataclass(frozen=True)
class TaskSnapshot:
    id: str
    kind: str | None
    status: TaskStatus
    retry_count: int
    error: str | None


@dataclass(frozen=True)
class WorkflowSnapshot:
    """What ``Orchestrator.get_workflow_status`` returns.

    Two snapshots of an unchanged workflow compare equal and carry the same
    fingerprint.
    """

    workflow_id: str
    project_id: str
    status: WorkflowStatus
    progress: int
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    tasks: tuple[TaskSnapshot, ...]
    counts: ProgressSnapshot
    fingerprint: int

    def task(self, task_id: str) -> TaskSnapshot | None:
        return next((t for t in self.tasks if t.id == task_id), None)


def _fingerprint(workflow: Workflow, tasks: tuple[TaskSnapshot, ...]) -> int:
    content = (
        workflow.id,
        workflow.status.value,
        workflow.progress,
        workflow.started_at.isoformat() if workflow.started_at else None,
        workflow.completed_at.isoformat() if workflow.completed_at else None,
        tuple((t.id, t.status.value, t.retry_count, t.error) for t in tasks),
    )
    return xxhash.xxh64(pickle.dumps(content)).intdigest()


def snapshot_workflow(workflow: Workflow) -> WorkflowSnapshot:
    tasks = tuple(
        TaskSnapshot(
            id=task.id,
            kind=task.kind.value if task.kind is not None else None,
            status=task.status,
            retry_count=task.retry_count,
            error=task.error,
        )
        for task in workflow.tasks.values()
    )

    return WorkflowSnapshot(
        workflow_id=workflow.id,
        project_id=workflow.project_id,
        status=workflow.status,
        progress=workflow.progress,
        created_at=workflow.created_at,
        started_at=workflow.started_at,
        completed_at=workflow.completed_at,
        tasks=tasks,
        counts=ProgressSnapshot.from_workflow(workflow),
        fingerprint=_fingerprint(workflow, tasks),
    )
