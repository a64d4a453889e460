"""Results produced by workers and returned by the executor.

WorkerResult is what a worker hands back for one attempt. TaskResult and
WorkflowResult are the caller-facing summary: WorkflowResult is frozen so
a returned result is never changed by later execution passes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pyconvoy.models.status import ChangeKind, ResultStatus


@dataclass(frozen=True)
class FileChange:
    """A file created, updated or deleted by a worker."""

    path: str
    change_kind: ChangeKind
    content: str | None = None
    old_content: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.change_kind, str):
            object.__setattr__(self, "change_kind", ChangeKind(self.change_kind))


@dataclass
class WorkerResult:
    """Outcome of a single worker attempt.

    Example:
        change = FileChange("/a.ts", ChangeKind.CREATE, "...")
        return WorkerResult.ok(output="converted", files=[change])
        return WorkerResult.fail("model returned no code")
    """

    success: bool
    output: Any = None
    files: list[FileChange] = field(default_factory=list)
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        output: Any = None,
        files: list[FileChange] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> WorkerResult:
        return cls(
            success=True, output=output, files=list(files or []), metadata=dict(metadata or {})
        )

    @classmethod
    def fail(cls, error: str) -> WorkerResult:
        return cls(success=False, error=error)


@dataclass(frozen=True)
class TaskResult:
    """Per-task entry in a WorkflowResult."""

    task_id: str
    status: str
    """Either "success" or "error"."""

    output: Any = None
    files: tuple[FileChange, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class WorkflowResult:
    """Immutable summary of one execution pass over a workflow."""

    workflow_id: str
    status: ResultStatus
    completed_tasks: int
    total_tasks: int
    results: tuple[TaskResult, ...] = ()
    errors: tuple[str, ...] = ()
    critical_failure: bool = False
    paused: bool = False

    def is_success(self) -> bool:
        """Check if every task completed without recorded errors."""
        return self.status == ResultStatus.COMPLETED

    def result_for(self, task_id: str) -> TaskResult | None:
        return next((r for r in self.results if r.task_id == task_id), None)

    def __repr__(self) -> str:
        return (
            f"WorkflowResult(workflow_id={self.workflow_id!r}, status={self.status}, "
            f"completed={self.completed_tasks}/{self.total_tasks}, errors={len(self.errors)})"
        )
