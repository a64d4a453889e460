"""Workflow aggregate and the inputs it is built from.

A Workflow is created from a ConversionPlan (tasks copied 1:1) together
with an AgentContext. The context carries the project's source tree, the
source and target tech stacks, and the SharedContext through which
completed tasks hand results to later ones.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from pyconvoy.models.clock import utc_now
from pyconvoy.models.result import FileChange
from pyconvoy.models.status import TaskStatus, WorkflowStatus
from pyconvoy.models.task import Task


@dataclass
class TechStack:
    """Technology stack of a project (source or conversion target)."""

    language: str
    framework: str | None = None
    database: str | None = None
    runtime: str | None = None
    build_tool: str | None = None
    package_manager: str | None = None
    deployment: str | None = None
    additional: dict[str, str] = field(default_factory=dict)


@dataclass
class FileNode:
    """Node of an imported project's file tree."""

    name: str
    path: str
    kind: str = "file"
    """Either "file" or "directory"."""

    content: str | None = None
    children: list[FileNode] = field(default_factory=list)

    @property
    def is_directory(self) -> bool:
        return self.kind == "directory"

    def walk(self) -> Iterator[FileNode]:
        """Yield this node and every descendant, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find(self, path: str) -> FileNode | None:
        return next((node for node in self.walk() if node.path == path), None)


@dataclass(frozen=True)
class SharedEntry:
    """What a completed task exposes to the tasks after it."""

    result: Any
    files: tuple[FileChange, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)


class SharedContext(Mapping[str, SharedEntry]):
    """Write-once-per-key map of completed task outputs.

    Only the executor writes, once per completed task. Readers see it as a
    plain read-only mapping keyed by task id.
    """

    def __init__(self, entries: Mapping[str, SharedEntry] | None = None):
        self._entries: dict[str, SharedEntry] = dict(entries or {})

    def record(self, task_id: str, entry: SharedEntry) -> None:
        if task_id in self._entries:
            raise KeyError(f"Shared context already holds an entry for task {task_id!r}")
        self._entries[task_id] = entry

    def __getitem__(self, task_id: str) -> SharedEntry:
        return self._entries[task_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"SharedContext({list(self._entries)!r})"


@dataclass
class AgentContext:
    """Inputs shared by every task of one workflow."""

    project_id: str
    source_files: FileNode
    source_tech_stack: TechStack
    target_tech_stack: TechStack
    conversion_plan: ConversionPlan | None = None
    shared_data: SharedContext = field(default_factory=SharedContext)


@dataclass
class ConversionPlan:
    """Ordered task list produced by the external planning collaborator."""

    id: str
    project_id: str
    tasks: list[Task]
    estimated_duration: int = 0
    complexity: str = "medium"
    """One of "low", "medium" or "high"."""

    warnings: list[str] = field(default_factory=list)
    feasible: bool = True


@dataclass
class Workflow:
    """Tasks of one conversion job plus their execution state.

    ``tasks`` keeps plan order. Only the executor driving the workflow
    mutates task and workflow status.
    """

    id: str
    project_id: str
    tasks: dict[str, Task]
    context: AgentContext
    status: WorkflowStatus = WorkflowStatus.PENDING
    progress: int = 0
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    plan_id: str | None = None
    processed_batches: int = 0

    @classmethod
    def from_plan(cls, workflow_id: str, plan: ConversionPlan, context: AgentContext) -> Workflow:
        """Build a workflow owning fresh copies of the plan's tasks.

        The workflow also gets its own AgentContext and SharedContext, so
        workflows created from the same context never see each other's
        outputs. Entries already in ``context.shared_data`` are copied over.
        """
        tasks = {task.id: task.fresh_copy() for task in plan.tasks}
        context = replace(context, shared_data=SharedContext(context.shared_data))
        return cls(
            id=workflow_id,
            project_id=context.project_id,
            tasks=tasks,
            context=context,
            plan_id=plan.id,
        )

    @property
    def total_tasks(self) -> int:
        return len(self.tasks)

    def count(self, status: TaskStatus) -> int:
        return sum(1 for task in self.tasks.values() if task.status == status)

    def completed_count(self) -> int:
        return self.count(TaskStatus.COMPLETED)

    def tasks_with_status(self, *statuses: TaskStatus) -> list[Task]:
        return [task for task in self.tasks.values() if task.status in statuses]

    def __repr__(self) -> str:
        return (
            f"Workflow(id={self.id!r}, project_id={self.project_id!r}, status={self.status}, "
            f"progress={self.progress}, tasks={len(self.tasks)})"
        )
