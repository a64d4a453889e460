"""
Workflow and task state machine.

Every status change the executor or orchestrator makes goes through this
module, so illegal transitions fail loudly instead of corrupting a
workflow.

**Workflow transitions**:
```
PENDING ──start──▶ RUNNING ──complete──▶ COMPLETED
                     │  ▲
               pause │  │ resume
                     ▼  │
                    PAUSED
RUNNING ──fail──▶ FAILED ──restart──▶ RUNNING
any non-terminal ──cancel──▶ FAILED
```

**Task transitions**:
```
PENDING ──▶ RUNNING ──▶ COMPLETED | FAILED
PENDING ──▶ SKIPPED | FAILED (cancel)
FAILED  ──▶ PENDING (retry)
SKIPPED ──▶ PENDING (retry_failed_tasks)
```
"""

from __future__ import annotations

import logging

from pyconvoy.errors import InvalidTransitionError
from pyconvoy.executor.cancellation import CancellationToken
from pyconvoy.models import Task, TaskStatus, Workflow, WorkflowStatus, utc_now

logger = logging.getLogger(__name__)

_WORKFLOW_TRANSITIONS: dict[WorkflowStatus, frozenset[WorkflowStatus]] = {
    WorkflowStatus.PENDING: frozenset({WorkflowStatus.RUNNING, WorkflowStatus.FAILED}),
    WorkflowStatus.RUNNING: frozenset(
        {WorkflowStatus.PAUSED, WorkflowStatus.COMPLETED, WorkflowStatus.FAILED}
    ),
    WorkflowStatus.PAUSED: frozenset({WorkflowStatus.RUNNING, WorkflowStatus.FAILED}),
    WorkflowStatus.COMPLETED: frozenset(),
    WorkflowStatus.FAILED: frozenset({WorkflowStatus.RUNNING}),
}

_TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.SKIPPED, TaskStatus.FAILED}),
    TaskStatus.RUNNING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset({TaskStatus.PENDING}),
    TaskStatus.SKIPPED: frozenset({TaskStatus.PENDING}),
}


def can_transition(current: WorkflowStatus, target: WorkflowStatus) -> bool:
    return target in _WORKFLOW_TRANSITIONS[current]


def can_transition_task(current: TaskStatus, target: TaskStatus) -> bool:
    return target in _TASK_TRANSITIONS[current]


class WorkflowStateMachine:
    """Applies legal status transitions to workflows and their tasks.

    Stateless: one instance can serve any number of workflows.
    """

    # =========================================================================
    # Workflow transitions
    # =========================================================================

    def _move(self, workflow: Workflow, target: WorkflowStatus) -> None:
        if not can_transition(workflow.status, target):
            raise InvalidTransitionError(f"Workflow {workflow.id}", workflow.status, target)
        logger.debug(f"Workflow {workflow.id}: {workflow.status} -> {target}")
        workflow.status = target

    def start(self, workflow: Workflow) -> None:
        """pending -> running."""
        if workflow.status is not WorkflowStatus.PENDING:
            raise InvalidTransitionError(
                f"Workflow {workflow.id}", workflow.status, WorkflowStatus.RUNNING
            )
        self._move(workflow, WorkflowStatus.RUNNING)
        workflow.started_at = utc_now()
        workflow.processed_batches = 0

    def pause(self, workflow: Workflow) -> None:
        """running -> paused. The executor stops before its next batch."""
        if workflow.status is not WorkflowStatus.RUNNING:
            raise InvalidTransitionError(
                f"Workflow {workflow.id}", workflow.status, WorkflowStatus.PAUSED
            )
        self._move(workflow, WorkflowStatus.PAUSED)

    def resume(self, workflow: Workflow) -> None:
        """paused -> running."""
        if workflow.status is not WorkflowStatus.PAUSED:
            raise InvalidTransitionError(
                f"Workflow {workflow.id}", workflow.status, WorkflowStatus.RUNNING
            )
        self._move(workflow, WorkflowStatus.RUNNING)

    def finish(self, workflow: Workflow, success: bool) -> None:
        """running -> completed | failed."""
        target = WorkflowStatus.COMPLETED if success else WorkflowStatus.FAILED
        if workflow.status is not WorkflowStatus.RUNNING:
            raise InvalidTransitionError(f"Workflow {workflow.id}", workflow.status, target)
        self._move(workflow, target)
        workflow.completed_at = utc_now()

    def restart(self, workflow: Workflow) -> None:
        """failed -> running, after failed tasks were reset."""
        if workflow.status is not WorkflowStatus.FAILED:
            raise InvalidTransitionError(
                f"Workflow {workflow.id}", workflow.status, WorkflowStatus.RUNNING
            )
        self._move(workflow, WorkflowStatus.RUNNING)
        workflow.completed_at = None
        workflow.processed_batches = 0

    def cancel(self, workflow: Workflow, token: CancellationToken | None = None) -> list[str]:
        """
        Force a non-terminal workflow to failed.

        Every pending or running task becomes failed with a cancellation
        error, and ``token`` is tripped so in-flight workers can stop.

        Returns:
            Ids of the tasks that were cancelled
        """
        if workflow.status.is_terminal:
            raise InvalidTransitionError(
                f"Workflow {workflow.id}", workflow.status, WorkflowStatus.FAILED
            )

        cancelled = []
        for task in workflow.tasks_with_status(TaskStatus.PENDING, TaskStatus.RUNNING):
            self.fail_task(task, f"Task {task.id} failed: workflow cancelled")
            cancelled.append(task.id)

        self._move(workflow, WorkflowStatus.FAILED)
        workflow.completed_at = utc_now()

        if token is not None:
            token.cancel(f"Workflow {workflow.id} cancelled")

        return cancelled

    # =========================================================================
    # Task transitions
    # =========================================================================

    def _move_task(self, task: Task, target: TaskStatus) -> None:
        if not can_transition_task(task.status, target):
            raise InvalidTransitionError(f"Task {task.id}", task.status, target)
        task.status = target

    def start_task(self, task: Task, worker_name: str) -> None:
        self._move_task(task, TaskStatus.RUNNING)
        task.assigned_worker = worker_name
        task.started_at = utc_now()
        task.error = None

    def complete_task(self, task: Task) -> None:
        self._move_task(task, TaskStatus.COMPLETED)
        task.completed_at = utc_now()
        task.error = None

    def fail_task(self, task: Task, error: str) -> None:
        self._move_task(task, TaskStatus.FAILED)
        task.completed_at = utc_now()
        task.error = error

    def skip_task(self, task: Task, reason: str) -> None:
        self._move_task(task, TaskStatus.SKIPPED)
        task.error = reason

    def retry_task(self, task: Task) -> None:
        """failed -> pending, consuming one unit of retry budget."""
        if task.status is not TaskStatus.FAILED:
            raise InvalidTransitionError(f"Task {task.id}", task.status, TaskStatus.PENDING)
        self._move_task(task, TaskStatus.PENDING)
        task.retry_count += 1

    def reset_task(self, task: Task) -> None:
        """failed | skipped -> pending with a fresh retry budget."""
        self._move_task(task, TaskStatus.PENDING)
        task.retry_count = 0
        task.result = None
        task.assigned_worker = None
        task.started_at = None
        task.completed_at = None
        task.error = None
