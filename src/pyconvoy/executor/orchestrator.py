"""
Orchestrator facade.

Design Pattern: Façade Pattern
Owns the workflow store, the worker registry, the executor and the table
of workflows currently being driven, and exposes the lifecycle operations
callers need:

- create_workflow(): validate a plan and store a new workflow
- execute_workflow() / resume_workflow(): drive a workflow to a result
- pause_workflow() / cancel_workflow(): request state changes
- retry_failed_tasks(): give failed and skipped tasks a fresh budget
- cleanup(): purge finished workflows past the retention window

Usage:
    orchestrator = (
        Orchestrator()
        .with_max_concurrent_tasks(4)
        .with_retry_policy(RetryPolicy.BACKOFF)
    )
    orchestrator.register_worker(analyzer)

    workflow = await orchestrator.create_workflow(plan, context)
    result = await orchestrator.execute_workflow(workflow.id)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timedelta

from uuid_extensions import uuid7

from pyconvoy.config import OrchestratorConfig
from pyconvoy.errors import InvalidTransitionError, WorkflowNotFoundError
from pyconvoy.executor.cancellation import CancellationToken
from pyconvoy.executor.progress import WorkflowSnapshot, snapshot_workflow
from pyconvoy.executor.registry import WorkerRegistry
from pyconvoy.executor.runner import WorkflowExecutor
from pyconvoy.executor.state import WorkflowStateMachine
from pyconvoy.executor.validation import validate_plan
from pyconvoy.executor.worker import Worker
from pyconvoy.files import FileTree
from pyconvoy.models import (
    AgentContext,
    ConversionPlan,
    DispatchPolicy,
    RetryPolicy,
    TaskKind,
    TaskStatus,
    Workflow,
    WorkerMetrics,
    WorkflowResult,
    WorkflowStatus,
    utc_now,
)
from pyconvoy.storage import InMemoryWorkflowStore, WorkflowStore

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Owns workflow lifecycles.

    All dependencies are passed explicitly; defaults give an in-memory,
    single-process setup.

    Workflows being driven are kept in a live table, so pause and cancel
    reach the object the executor is mutating even when the store hands
    out copies.
    """

    def __init__(
        self,
        store: WorkflowStore | None = None,
        registry: WorkerRegistry | None = None,
        config: OrchestratorConfig | None = None,
        files: FileTree | None = None,
    ):
        """
        Args:
            store: Workflow persistence; in-memory when omitted
            registry: Worker registry; a new one using the config's dispatch policy when omitted
            config: Settings; ``OrchestratorConfig()`` defaults when omitted
            files: File-tree collaborator for input lookup and change notifications
        """
        self._config = config or OrchestratorConfig()
        self._store = store or InMemoryWorkflowStore()
        self._registry = registry or WorkerRegistry(self._config.dispatch_policy)
        self._state = WorkflowStateMachine()
        self._executor = WorkflowExecutor(self._registry, self._config, files, self._state)

        self._live: dict[str, Workflow] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._runs: dict[str, asyncio.Future[WorkflowResult]] = {}

    # =========================================================================
    # Builder configuration
    # =========================================================================

    def _reconfigure(self, **changes) -> Orchestrator:
        self._config = replace(self._config, **changes)
        self._executor.configure(self._config)
        return self

    def with_config(self, config: OrchestratorConfig) -> Orchestrator:
        """Replace the whole configuration (builder pattern)."""
        self._config = config
        self._executor.configure(config)
        self._registry.set_policy(config.dispatch_policy)
        return self

    def with_max_concurrent_tasks(self, max_concurrent: int | None) -> Orchestrator:
        """Bound how many tasks of one batch run at once; None removes the bound.

        Example:
            orchestrator = Orchestrator().with_max_concurrent_tasks(8)
        """
        return self._reconfigure(max_concurrent_tasks=max_concurrent)

    def with_critical_kinds(self, kinds: Iterable[TaskKind | str]) -> Orchestrator:
        """Set the task kinds whose failure aborts a workflow."""
        return self._reconfigure(critical_kinds=frozenset(TaskKind(k) for k in kinds))

    def with_retry_policy(self, policy: RetryPolicy) -> Orchestrator:
        """Set the pacing between re-attempts of a failed task."""
        return self._reconfigure(retry_policy=policy)

    def with_task_timeout(self, seconds: float | None) -> Orchestrator:
        """Bound each attempt; a timed-out attempt counts as a retryable failure."""
        return self._reconfigure(task_timeout=seconds)

    def with_retention(self, retention: timedelta) -> Orchestrator:
        """Set how long finished workflows are kept before cleanup() purges them."""
        return self._reconfigure(retention=retention)

    def with_dispatch_policy(self, policy: DispatchPolicy) -> Orchestrator:
        self._registry.set_policy(policy)
        return self._reconfigure(dispatch_policy=policy)

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def store(self) -> WorkflowStore:
        return self._store

    @property
    def registry(self) -> WorkerRegistry:
        return self._registry

    # =========================================================================
    # Workflow lifecycle
    # =========================================================================

    async def create_workflow(self, plan: ConversionPlan, context: AgentContext) -> Workflow:
        """
        Validate ``plan`` and store a new pending workflow built from it.

        Raises:
            PlanError: plan has empty, duplicate or dangling task ids
        """
        validate_plan(plan)

        if not plan.feasible:
            logger.warning(f"Plan {plan.id} is marked infeasible: {'; '.join(plan.warnings)}")

        if context.conversion_plan is None:
            context.conversion_plan = plan

        workflow = Workflow.from_plan(str(uuid7()), plan, context)
        await self._store.save(workflow)

        logger.info(
            f"Created workflow {workflow.id} for project {workflow.project_id} "
            f"with {workflow.total_tasks} tasks"
        )
        return workflow

    async def execute_workflow(self, workflow_id: str) -> WorkflowResult:
        """
        Run a pending workflow to a result.

        Raises:
            WorkflowNotFoundError: unknown id
            InvalidTransitionError: workflow is not pending
        """
        workflow = await self._load(workflow_id)
        self._state.start(workflow)
        logger.info(f"Starting workflow {workflow_id}")
        return await self._drive(workflow)

    async def pause_workflow(self, workflow_id: str) -> None:
        """
        Pause a running workflow. The executor finishes the current batch
        and stops before the next one.

        Raises:
            WorkflowNotFoundError: unknown id
            InvalidTransitionError: workflow is not running
        """
        workflow = await self._load(workflow_id)
        self._state.pause(workflow)
        await self._store.save(workflow)
        logger.info(f"Paused workflow {workflow_id}")

    async def resume_workflow(self, workflow_id: str) -> WorkflowResult:
        """
        Continue a paused workflow from its first unprocessed batch.

        If the workflow was paused while its current batch was still in
        flight, the running pass simply continues and its result is
        returned.

        Raises:
            WorkflowNotFoundError: unknown id
            InvalidTransitionError: workflow is not paused
        """
        workflow = await self._load(workflow_id)
        self._state.resume(workflow)
        logger.info(
            f"Resuming workflow {workflow_id} after {workflow.processed_batches} processed batches"
        )

        in_flight = self._runs.get(workflow_id)
        if in_flight is not None:
            return await asyncio.shield(in_flight)

        return await self._drive(workflow)

    async def cancel_workflow(self, workflow_id: str) -> None:
        """
        Cancel a non-terminal workflow: pending and running tasks fail and
        in-flight workers are signalled through the cancellation token.

        Raises:
            WorkflowNotFoundError: unknown id
            InvalidTransitionError: workflow already finished
        """
        workflow = await self._load(workflow_id)
        cancelled = self._state.cancel(workflow, self._tokens.get(workflow_id))
        await self._store.save(workflow)
        logger.info(f"Cancelled workflow {workflow_id} ({len(cancelled)} tasks stopped)")

    async def retry_failed_tasks(self, workflow_id: str) -> WorkflowResult | None:
        """
        Reset failed and skipped tasks to pending with a fresh retry budget.

        A failed workflow is run again and its new result returned. Returns
        None when nothing needed retrying.

        Raises:
            WorkflowNotFoundError: unknown id
            InvalidTransitionError: workflow is running or paused
        """
        workflow = await self._load(workflow_id)
        if workflow.status.is_active:
            raise InvalidTransitionError(
                f"Workflow {workflow_id}", workflow.status, WorkflowStatus.RUNNING
            )

        to_retry = workflow.tasks_with_status(TaskStatus.FAILED, TaskStatus.SKIPPED)
        if not to_retry:
            return None

        for task in to_retry:
            self._state.reset_task(task)
        logger.info(f"Retrying {len(to_retry)} tasks of workflow {workflow_id}")

        if workflow.status is not WorkflowStatus.FAILED:
            await self._store.save(workflow)
            return None

        self._state.restart(workflow)
        return await self._drive(workflow)

    async def _drive(self, workflow: Workflow) -> WorkflowResult:
        token = CancellationToken()
        run: asyncio.Future[WorkflowResult] = asyncio.get_running_loop().create_future()

        self._live[workflow.id] = workflow
        self._tokens[workflow.id] = token
        self._runs[workflow.id] = run
        try:
            result = await self._executor.run(workflow, token)
        except asyncio.CancelledError:
            run.cancel()
            raise
        except Exception as e:
            run.set_exception(e)
            # Mark retrieved; a concurrent resume may not be waiting on it
            run.exception()
            raise
        else:
            run.set_result(result)
            return result
        finally:
            self._live.pop(workflow.id, None)
            self._tokens.pop(workflow.id, None)
            self._runs.pop(workflow.id, None)
            await self._store.save(workflow)

    # =========================================================================
    # Queries
    # =========================================================================

    async def _find(self, workflow_id: str) -> Workflow | None:
        live = self._live.get(workflow_id)
        if live is not None:
            return live
        return await self._store.get(workflow_id)

    async def _load(self, workflow_id: str) -> Workflow:
        workflow = await self._find(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        return await self._find(workflow_id)

    async def get_workflow_status(self, workflow_id: str) -> WorkflowSnapshot | None:
        """Detached snapshot of a workflow; None for unknown ids."""
        workflow = await self._find(workflow_id)
        if workflow is None:
            return None
        return snapshot_workflow(workflow)

    async def _all_workflows(self) -> list[Workflow]:
        workflows = {w.id: w for w in await self._store.list_workflows()}
        workflows.update(self._live)
        return list(workflows.values())

    async def get_active_workflows(self) -> list[Workflow]:
        """Workflows that are running or paused."""
        return [w for w in await self._all_workflows() if w.status.is_active]

    async def get_workflow_history(self) -> list[Workflow]:
        """Finished workflows, most recently completed first."""
        finished = [w for w in await self._all_workflows() if w.status.is_terminal]
        return sorted(finished, key=lambda w: w.completed_at or w.created_at, reverse=True)

    # =========================================================================
    # Workers
    # =========================================================================

    def register_worker(self, worker: Worker) -> None:
        self._registry.register(worker)

    def unregister_worker(self, kind: str) -> bool:
        return self._registry.unregister(kind)

    def get_registered_workers(self) -> list[Worker]:
        return self._registry.workers()

    def get_worker_metrics(self) -> dict[str, WorkerMetrics]:
        return self._registry.metrics()

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def cleanup(self, now: datetime | None = None) -> list[str]:
        """
        Purge finished workflows completed longer ago than the retention window.

        Args:
            now: Reference time; defaults to the current UTC time

        Returns:
            Ids of the purged workflows
        """
        cutoff = (now or utc_now()) - self._config.retention
        purged = await self._store.purge_completed_before(cutoff)
        if purged:
            logger.info(f"Purged {len(purged)} workflows completed before {cutoff.isoformat()}")
        return purged

    async def close(self) -> None:
        """Close the underlying store."""
        await self._store.close()
