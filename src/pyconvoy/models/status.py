"""Status enumerations for workflow execution tracking.

Defines lifecycle states for individual tasks, for the workflows that
own them, and for the result handed back to callers.
"""

from enum import Enum


class TaskStatus(Enum):
    """Status of a single task inside a workflow.

    Lifecycle:
        PENDING → RUNNING → COMPLETED/FAILED
        PENDING → SKIPPED (a dependency did not complete)

    A FAILED task with retry budget left goes back to PENDING and is
    attempted again within the same batch pass.
    """

    PENDING = "pending"
    """Task is waiting for its batch (or for a retry attempt)."""

    RUNNING = "running"
    """Task has been dispatched and a worker is executing it."""

    COMPLETED = "completed"
    """Task finished successfully and wrote its shared context entry."""

    FAILED = "failed"
    """Task failed after exhausting its retry budget, or was cancelled."""

    SKIPPED = "skipped"
    """Task was never dispatched because a dependency did not complete."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal for the current pass."""
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.SKIPPED)

    def __str__(self) -> str:
        return self.value


class WorkflowStatus(Enum):
    """Status of a workflow.

    Lifecycle:
        PENDING → RUNNING → (PAUSED ↔ RUNNING) → COMPLETED/FAILED

    Cancellation moves any non-terminal workflow straight to FAILED.
    """

    PENDING = "pending"
    """Workflow is created but has not started executing."""

    RUNNING = "running"
    """Workflow is processing batches."""

    PAUSED = "paused"
    """Workflow stopped before its next batch; resume continues from there."""

    COMPLETED = "completed"
    """Every task completed without recorded errors."""

    FAILED = "failed"
    """Workflow ended with errors, a critical failure, or was cancelled."""

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (no transition leaves it)."""
        return self in (WorkflowStatus.COMPLETED, WorkflowStatus.FAILED)

    @property
    def is_active(self) -> bool:
        """Check if the workflow is running or paused."""
        return self in (WorkflowStatus.RUNNING, WorkflowStatus.PAUSED)

    def __str__(self) -> str:
        return self.value


class ResultStatus(Enum):
    """Outcome reported in a WorkflowResult."""

    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"

    def __str__(self) -> str:
        return self.value


class ChangeKind(Enum):
    """Kind of file change produced by a worker."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value
