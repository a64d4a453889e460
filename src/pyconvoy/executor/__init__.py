"""
Executor module - coordination engine for conversion workflows.

This module contains the execution components:
- graph: dependency batching (TaskGraph)
- worker / registry: worker protocol and dispatch
- validation: plan and per-attempt task checks
- state: workflow and task state machine
- runner: batch executor (WorkflowExecutor)
- orchestrator: lifecycle facade (Orchestrator)
- retention: periodic cleanup of finished workflows
"""

from pyconvoy.executor.cancellation import CancellationToken
from pyconvoy.executor.graph import GraphSummary, Schedule, TaskGraph
from pyconvoy.executor.orchestrator import Orchestrator
from pyconvoy.executor.progress import (
    ProgressSnapshot,
    TaskSnapshot,
    WorkflowSnapshot,
    snapshot_workflow,
)
from pyconvoy.executor.registry import WorkerRegistry
from pyconvoy.executor.retention import RetentionSweeper, SweeperHandle
from pyconvoy.executor.runner import WorkflowExecutor
from pyconvoy.executor.state import WorkflowStateMachine
from pyconvoy.executor.validation import validate_plan, validate_task
from pyconvoy.executor.worker import FunctionWorker, Worker, handles

__all__ = [
    # Scheduling
    "TaskGraph",
    "Schedule",
    "GraphSummary",
    # Workers
    "Worker",
    "FunctionWorker",
    "handles",
    "WorkerRegistry",
    # Validation
    "validate_plan",
    "validate_task",
    # Execution
    "CancellationToken",
    "WorkflowExecutor",
    "WorkflowStateMachine",
    "Orchestrator",
    # Progress
    "ProgressSnapshot",
    "TaskSnapshot",
    "WorkflowSnapshot",
    "snapshot_workflow",
    # Maintenance
    "RetentionSweeper",
    "SweeperHandle",
]
