"""
Convoy: Workflow coordination for multi-step conversion pipelines.

Runs a set of interdependent tasks in dependency order, routes each task
to a worker that can perform it, retries failures and tracks every
workflow to completion or abort.

Design Pattern: Façade Pattern
This module exposes the types callers need, hiding the split between
scheduling, dispatch, execution and storage.

Example:
    ```python
    import asyncio
    from pyconvoy import (
        AgentContext, ConversionPlan, FileNode, FunctionWorker,
        Orchestrator, Task, TechStack, WorkerResult,
    )

    async def analyze(task, context, token):
        return WorkerResult.ok(output={"files": 3})

    async def main():
        orchestrator = Orchestrator()
        orchestrator.register_worker(
            FunctionWorker("analyzer", "analysis", analyze, capabilities=["analysis"])
        )

        plan = ConversionPlan(
            id="plan-1",
            project_id="proj-1",
            tasks=[Task("analyze", "analysis", "Analyze project", worker_kind="analysis")],
        )
        context = AgentContext(
            project_id="proj-1",
            source_files=FileNode("root", "/", kind="directory"),
            source_tech_stack=TechStack("javascript", framework="express"),
            target_tech_stack=TechStack("typescript", framework="fastify"),
        )

        workflow = await orchestrator.create_workflow(plan, context)
        result = await orchestrator.execute_workflow(workflow.id)
        print(result.status)

    asyncio.run(main())
    ```
"""

# Configuration
from pyconvoy.config import OrchestratorConfig

# Errors
from pyconvoy.errors import (
    CircularDependencyWarning,
    ConvoyError,
    CriticalFailure,
    DispatchError,
    ExecutionError,
    InvalidTransitionError,
    PlanError,
    TaskError,
    ValidationError,
    WorkflowNotFoundError,
)

# Execution
from pyconvoy.executor import (
    CancellationToken,
    FunctionWorker,
    GraphSummary,
    Orchestrator,
    ProgressSnapshot,
    RetentionSweeper,
    Schedule,
    SweeperHandle,
    TaskGraph,
    TaskSnapshot,
    Worker,
    WorkerRegistry,
    WorkflowExecutor,
    WorkflowSnapshot,
    WorkflowStateMachine,
    handles,
    snapshot_workflow,
    validate_plan,
    validate_task,
)

# File-tree collaborator
from pyconvoy.files import FileEntry, FileTree, InMemoryFileTree

# Core types
from pyconvoy.models import (
    AgentContext,
    ChangeKind,
    ConversionPlan,
    DispatchPolicy,
    FileChange,
    FileNode,
    ResultStatus,
    RetryPolicy,
    SharedContext,
    SharedEntry,
    Task,
    TaskKind,
    TaskResult,
    TaskStatus,
    TechStack,
    WorkerKind,
    WorkerMetrics,
    WorkerResult,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
)

# Storage (Adapter pattern)
from pyconvoy.storage import InMemoryWorkflowStore, StorageError, WorkflowStore

# Version
__version__ = "0.1.0"

__all__ = [
    # Core types
    "Task",
    "TaskKind",
    "TaskStatus",
    "WorkerKind",
    "Workflow",
    "WorkflowStatus",
    "AgentContext",
    "ConversionPlan",
    "FileNode",
    "TechStack",
    "SharedContext",
    "SharedEntry",
    "FileChange",
    "ChangeKind",
    "WorkerResult",
    "TaskResult",
    "WorkflowResult",
    "ResultStatus",
    "RetryPolicy",
    "DispatchPolicy",
    "WorkerMetrics",
    # Configuration
    "OrchestratorConfig",
    # Errors
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
    "StorageError",
    # Scheduling
    "TaskGraph",
    "Schedule",
    "GraphSummary",
    # Workers
    "Worker",
    "FunctionWorker",
    "handles",
    "WorkerRegistry",
    # Execution
    "CancellationToken",
    "WorkflowExecutor",
    "WorkflowStateMachine",
    "Orchestrator",
    "validate_plan",
    "validate_task",
    # Progress
    "ProgressSnapshot",
    "TaskSnapshot",
    "WorkflowSnapshot",
    "snapshot_workflow",
    # Maintenance
    "RetentionSweeper",
    "SweeperHandle",
    # Files
    "FileEntry",
    "FileTree",
    "InMemoryFileTree",
    # Storage
    "WorkflowStore",
    "InMemoryWorkflowStore",
    # Metadata
    "__version__",
]
