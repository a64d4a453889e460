"""Core data models for workflow coordination.

Defines types for tasks, workflows, worker output and retry pacing.

Design: Dependency-Free Models
These types have no dependencies on the executor or storage modules to
prevent circular imports and enable clean layering.
"""

from pyconvoy.models.clock import utc_now
from pyconvoy.models.dispatch import DispatchPolicy
from pyconvoy.models.metrics import WorkerMetrics
from pyconvoy.models.result import FileChange, TaskResult, WorkerResult, WorkflowResult
from pyconvoy.models.retry import RetryPolicy
from pyconvoy.models.status import ChangeKind, ResultStatus, TaskStatus, WorkflowStatus
from pyconvoy.models.task import (
    AnalysisContext,
    CodeGenerationContext,
    ConfigUpdateContext,
    DependencyUpdateContext,
    IntegrationContext,
    PlanningContext,
    Task,
    TaskContext,
    TaskKind,
    ValidationContext,
    WorkerKind,
    task_context_from_dict,
)
from pyconvoy.models.workflow import (
    AgentContext,
    ConversionPlan,
    FileNode,
    SharedContext,
    SharedEntry,
    TechStack,
    Workflow,
)

__all__ = [
    "utc_now",
    "DispatchPolicy",
    "WorkerMetrics",
    "FileChange",
    "TaskResult",
    "WorkerResult",
    "WorkflowResult",
    "RetryPolicy",
    "ChangeKind",
    "ResultStatus",
    "TaskStatus",
    "WorkflowStatus",
    "Task",
    "TaskKind",
    "WorkerKind",
    "TaskContext",
    "AnalysisContext",
    "PlanningContext",
    "CodeGenerationContext",
    "DependencyUpdateContext",
    "ConfigUpdateContext",
    "ValidationContext",
    "IntegrationContext",
    "task_context_from_dict",
    "AgentContext",
    "ConversionPlan",
    "FileNode",
    "SharedContext",
    "SharedEntry",
    "TechStack",
    "Workflow",
]
