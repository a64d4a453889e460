"""Task model: one schedulable unit of work.

A Task names its kind, the worker category expected to run it, the
artifacts it reads and writes, and the ids of the tasks that must complete
before it may start. The free-form payload of the original planner is a
tagged union here: one context dataclass per task kind, each keeping
unrecognised keys in ``extra``.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Union

from pyconvoy.models.result import WorkerResult
from pyconvoy.models.status import TaskStatus


class TaskKind(Enum):
    """Kind of work a task performs."""

    ANALYSIS = "analysis"
    PLANNING = "planning"
    CODE_GENERATION = "code_generation"
    DEPENDENCY_UPDATE = "dependency_update"
    CONFIG_UPDATE = "config_update"
    VALIDATION = "validation"
    INTEGRATION = "integration"

    def __str__(self) -> str:
        return self.value


class WorkerKind(Enum):
    """Worker categories shipped with the conversion pipeline.

    Workers declare their kind as a plain string, so third-party kinds
    are allowed; these are the ones planners emit by default.
    """

    ANALYSIS = "analysis"
    PLANNING = "planning"
    CODE_GENERATION = "code_generation"
    VALIDATION = "validation"
    INTEGRATION = "integration"

    def __str__(self) -> str:
        return self.value


# =============================================================================
# Tagged task context
# =============================================================================


@dataclass
class _TaskContextBase:
    extra: dict[str, Any] = field(default_factory=dict)

    kind: ClassVar[TaskKind]

    def to_dict(self) -> dict[str, Any]:
        """Flatten the context back into a plain mapping."""
        data = asdict(self)
        extra = data.pop("extra")
        data.update(extra)
        return data


@dataclass
class AnalysisContext(_TaskContextBase):
    focus_areas: list[str] = field(default_factory=list)

    kind: ClassVar[TaskKind] = TaskKind.ANALYSIS


@dataclass
class PlanningContext(_TaskContextBase):
    strategy: str | None = None

    kind: ClassVar[TaskKind] = TaskKind.PLANNING


@dataclass
class CodeGenerationContext(_TaskContextBase):
    source_language: str | None = None
    target_language: str | None = None

    kind: ClassVar[TaskKind] = TaskKind.CODE_GENERATION


@dataclass
class DependencyUpdateContext(_TaskContextBase):
    packages: dict[str, str] = field(default_factory=dict)

    kind: ClassVar[TaskKind] = TaskKind.DEPENDENCY_UPDATE


@dataclass
class ConfigUpdateContext(_TaskContextBase):
    config_type: str | None = None

    kind: ClassVar[TaskKind] = TaskKind.CONFIG_UPDATE


@dataclass
class ValidationContext(_TaskContextBase):
    checks: list[str] = field(default_factory=list)

    kind: ClassVar[TaskKind] = TaskKind.VALIDATION


@dataclass
class IntegrationContext(_TaskContextBase):
    integration_type: str = "full_system"

    kind: ClassVar[TaskKind] = TaskKind.INTEGRATION


TaskContext = Union[
    AnalysisContext,
    PlanningContext,
    CodeGenerationContext,
    DependencyUpdateContext,
    ConfigUpdateContext,
    ValidationContext,
    IntegrationContext,
]

_CONTEXT_TYPES: dict[TaskKind, type] = {
    cls.kind: cls
    for cls in (
        AnalysisContext,
        PlanningContext,
        CodeGenerationContext,
        DependencyUpdateContext,
        ConfigUpdateContext,
        ValidationContext,
        IntegrationContext,
    )
}


def task_context_from_dict(kind: TaskKind, data: dict[str, Any] | None = None) -> TaskContext:
    """Build the context variant for ``kind`` from a plain mapping.

    Keys the variant names become fields; everything else is kept in
    ``extra`` so no planner payload is lost.

    Example:
        ctx = task_context_from_dict(TaskKind.CONFIG_UPDATE, {"config_type": "tsconfig"})
        assert ctx.config_type == "tsconfig"
    """
    cls = _CONTEXT_TYPES[kind]
    data = dict(data or {})
    extra = dict(data.pop("extra", None) or {})

    names = {f.name for f in fields(cls)} - {"extra"}
    known = {key: value for key, value in data.items() if key in names}
    extra.update({key: value for key, value in data.items() if key not in names})

    return cls(extra=extra, **known)


# =============================================================================
# Task
# =============================================================================


@dataclass
class Task:
    """A unit of work with declared dependencies.

    ``priority`` and ``estimated_duration`` are informational only; they
    never influence batch composition or ordering.
    """

    id: str
    kind: TaskKind | None
    description: str
    input_refs: list[str] = field(default_factory=list)
    output_refs: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    worker_kind: str = ""
    priority: int = 0
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    max_retries: int = 3
    estimated_duration: int = 0
    context: TaskContext | None = None

    # Execution bookkeeping, owned by the executor
    result: WorkerResult | None = None
    assigned_worker: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if isinstance(self.kind, str):
            self.kind = TaskKind(self.kind)
        if isinstance(self.worker_kind, WorkerKind):
            self.worker_kind = self.worker_kind.value
        if isinstance(self.status, str):
            self.status = TaskStatus(self.status)
        if self.max_retries < 0:
            raise ValueError(f"Task {self.id!r}: max_retries must be >= 0")

        if self.kind is None:
            if self.context:
                raise TypeError(f"Task {self.id!r}: context given without a task kind")
            self.context = None
            return

        if self.context is None or isinstance(self.context, dict):
            self.context = task_context_from_dict(self.kind, self.context)
        elif self.context.kind != self.kind:
            raise TypeError(
                f"Task {self.id!r}: {type(self.context).__name__} does not match kind {self.kind}"
            )

    @property
    def has_retries_left(self) -> bool:
        return self.retry_count < self.max_retries

    def fresh_copy(self) -> Task:
        """Copy the task definition with execution state reset.

        Used when a plan is turned into a workflow: the workflow owns its
        tasks, so nothing the executor mutates is shared with the plan.
        """
        return replace(
            self,
            input_refs=list(self.input_refs),
            output_refs=list(self.output_refs),
            dependencies=list(self.dependencies),
            status=TaskStatus.PENDING,
            retry_count=0,
            context=copy.deepcopy(self.context),
            result=None,
            assigned_worker=None,
            started_at=None,
            completed_at=None,
            error=None,
        )

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"Task(id={self.id!r}, kind={self.kind}, status={self.status}, "
            f"retry_count={self.retry_count}/{self.max_retries}, "
            f"dependencies={self.dependencies!r})"
        )
