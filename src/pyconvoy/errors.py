"""
Error taxonomy for workflow coordination.

Task-level errors (ValidationError, ExecutionError, DispatchError) never
escape ``WorkflowExecutor.run()``: they are caught at the executor
boundary, decide whether a task is retried, and end up as human-readable
strings in the WorkflowResult. Caller misuse (unknown workflow, malformed
plan, illegal state transition) raises synchronously.

Retry control: every TaskError answers ``is_retryable()``, and the
executor re-attempts only errors that answer True.
"""

from __future__ import annotations

from collections.abc import Iterable


class ConvoyError(Exception):
    """Base class for every error raised by pyconvoy."""

    pass


# =============================================================================
# Task-level errors
# =============================================================================


class TaskError(ConvoyError):
    """A single task could not be carried out.

    Example:
        raise ExecutionError("model timed out", task_id="gen-1")
    """

    retryable_by_default: bool = True

    def __init__(self, message: str, task_id: str | None = None, retryable: bool | None = None):
        super().__init__(message)
        self.task_id = task_id
        self._retryable = self.retryable_by_default if retryable is None else retryable

    def is_retryable(self) -> bool:
        """
        Returns true if re-attempting the task could change the outcome.

        - True: counted against the task's retry budget and re-attempted.
        - False: the task fails immediately, whatever budget is left.
        """
        return self._retryable


class ValidationError(TaskError):
    """Task is malformed, has no capable worker, or references missing inputs."""

    pass


class ExecutionError(TaskError):
    """The dispatched worker raised, timed out, or returned ``success=False``."""

    pass


class DispatchError(TaskError):
    """No registered worker can execute the task.

    Never retried: re-attempting cannot change worker availability.
    """

    retryable_by_default = False

    def __init__(self, message: str, task_id: str | None = None):
        super().__init__(message, task_id=task_id, retryable=False)


# =============================================================================
# Workflow-level errors
# =============================================================================


class CriticalFailure(ConvoyError):
    """A task of a critical kind failed; the rest of the workflow is aborted."""

    def __init__(self, task_ids: Iterable[str]):
        self.task_ids = tuple(task_ids)
        super().__init__(f"Critical task failures detected: {', '.join(self.task_ids)}")


class PlanError(ConvoyError):
    """The conversion plan cannot be turned into a workflow."""

    pass


class WorkflowNotFoundError(ConvoyError, KeyError):
    """Operation on a workflow id the orchestrator does not know."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return f"Workflow {self.workflow_id} not found"


class InvalidTransitionError(ConvoyError):
    """Requested state change is not allowed from the current state."""

    def __init__(self, subject: str, current: object, target: object):
        self.subject = subject
        self.current = current
        self.target = target
        super().__init__(f"{subject}: cannot transition from {current} to {target}")


class CircularDependencyWarning(UserWarning):
    """Scheduler found a dependency cycle and degraded to a best-effort batch."""

    pass


__all__ = [
    "ConvoyError",
    "TaskError",
    "ValidationError",
    "ExecutionError",
    "DispatchError",
    "CriticalFailure",
    "PlanError",
    "WorkflowNotFoundError",
    "InvalidTransitionError",
    "CircularDependencyWarning",
]
