"""
Batch executor.

``WorkflowExecutor.run()`` drives one workflow through its batches:

1. Compute batches with ``TaskGraph``
2. For each batch, stop early if the workflow was paused or cancelled
3. Skip pending tasks whose dependencies did not complete
4. Run the remaining tasks concurrently (dispatch -> validate -> execute),
   re-attempting retryable failures while budget is left
5. Update progress, abort the remaining batches on a critical failure

Task failures never escape ``run()``; they end up as error strings in the
returned WorkflowResult.
"""

from __future__ import annotations

import asyncio
import logging
import time

from pyconvoy.config import OrchestratorConfig
from pyconvoy.errors import (
    CriticalFailure,
    DispatchError,
    ExecutionError,
    InvalidTransitionError,
    TaskError,
)
from pyconvoy.executor.cancellation import CancellationToken
from pyconvoy.executor.graph import TaskGraph
from pyconvoy.executor.progress import percent_complete
from pyconvoy.executor.registry import WorkerRegistry
from pyconvoy.executor.state import WorkflowStateMachine
from pyconvoy.executor.validation import validate_task
from pyconvoy.executor.worker import Worker
from pyconvoy.files import FileTree
from pyconvoy.models import (
    ResultStatus,
    SharedEntry,
    Task,
    TaskResult,
    TaskStatus,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
    WorkerResult,
)

logger = logging.getLogger(__name__)

CRITICAL_FAILURE_MESSAGE = "Critical task failures detected, stopping workflow"


class WorkflowExecutor:
    """
    Runs workflows batch by batch against a worker registry.

    The executor is the only component that changes task status while a
    workflow runs. It holds no per-workflow state, so one instance can
    drive several workflows concurrently.

    Usage:
        executor = WorkflowExecutor(registry, files=InMemoryFileTree.from_node(root))
        result = await executor.run(workflow)
    """

    def __init__(
        self,
        registry: WorkerRegistry,
        config: OrchestratorConfig | None = None,
        files: FileTree | None = None,
        state: WorkflowStateMachine | None = None,
    ):
        self._registry = registry
        self._config = config or OrchestratorConfig()
        self._files = files
        self._state = state or WorkflowStateMachine()

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    def configure(self, config: OrchestratorConfig) -> None:
        """Swap the configuration used by later runs."""
        self._config = config

    async def run(
        self, workflow: Workflow, token: CancellationToken | None = None
    ) -> WorkflowResult:
        """
        Execute every pending task of ``workflow`` in dependency order.

        A pending workflow is started; a running one (resumed or restarted)
        continues from its first unprocessed batch. Tasks that are already
        terminal are left untouched.

        Args:
            workflow: Workflow to execute; mutated in place
            token: Cancellation token tripped by ``cancel_workflow``

        Returns:
            Immutable summary of this execution pass

        Raises:
            InvalidTransitionError: workflow is neither pending nor running
        """
        token = token or CancellationToken()

        if workflow.status is WorkflowStatus.PENDING:
            self._state.start(workflow)
        elif workflow.status is not WorkflowStatus.RUNNING:
            raise InvalidTransitionError(
                f"Workflow {workflow.id}", workflow.status, WorkflowStatus.RUNNING
            )

        schedule = TaskGraph.from_tasks(workflow.tasks.values()).batches()
        logger.info(
            f"Executing workflow {workflow.id}: {workflow.total_tasks} tasks "
            f"in {len(schedule)} batches"
        )

        critical: CriticalFailure | None = None
        paused = False

        for index, batch in enumerate(schedule.batches):
            if token.is_cancelled or workflow.status is WorkflowStatus.FAILED:
                break
            if workflow.status is WorkflowStatus.PAUSED:
                paused = True
                logger.info(f"Workflow {workflow.id} paused before batch {index}")
                break

            runnable = self._runnable_tasks(workflow, batch, schedule.cyclic)
            logger.debug(f"Workflow {workflow.id} batch {index}: {[t.id for t in runnable]}")

            if runnable:
                await self._run_batch(workflow, runnable, token)

            workflow.progress = percent_complete(workflow.completed_count(), workflow.total_tasks)
            workflow.processed_batches = index + 1

            if token.is_cancelled:
                break

            failed_critical = [
                task.id
                for task in runnable
                if task.status is TaskStatus.FAILED and task.kind in self._config.critical_kinds
            ]
            if failed_critical:
                critical = CriticalFailure(failed_critical)
                logger.error(f"Workflow {workflow.id}: {critical}")
                break

        # A pause requested during the last batch still leaves the workflow paused
        if workflow.status is WorkflowStatus.PAUSED:
            paused = True

        result = self._build_result(workflow, critical, paused)

        if workflow.status is WorkflowStatus.RUNNING:
            self._state.finish(workflow, success=result.status is ResultStatus.COMPLETED)
            logger.info(f"Workflow {workflow.id} finished: {result.status}")

        return result

    def _runnable_tasks(
        self, workflow: Workflow, batch: list[str], cyclic: frozenset[str]
    ) -> list[Task]:
        runnable = []
        for task_id in batch:
            task = workflow.tasks[task_id]
            if task.status is not TaskStatus.PENDING:
                continue

            if task_id not in cyclic:
                unmet = [
                    dep
                    for dep in task.dependencies
                    if dep in workflow.tasks
                    and workflow.tasks[dep].status is not TaskStatus.COMPLETED
                ]
                if unmet:
                    reason = f"dependencies not completed: {', '.join(unmet)}"
                    self._state.skip_task(task, f"Task {task.id} skipped: {reason}")
                    logger.warning(task.error)
                    continue

            runnable.append(task)
        return runnable

    async def _run_batch(
        self, workflow: Workflow, tasks: list[Task], token: CancellationToken
    ) -> None:
        """Run one batch; a failing task never cancels its siblings."""
        limit = self._config.max_concurrent_tasks
        semaphore = asyncio.Semaphore(limit) if limit is not None else None

        attempts = [
            asyncio.create_task(self._run_task(workflow, task, token, semaphore))
            for task in tasks
        ]
        gathered = asyncio.gather(*attempts, return_exceptions=True)

        if not self._config.interrupt_on_cancel:
            outcomes = await gathered
        else:
            watcher = asyncio.create_task(token.wait())
            try:
                done, _ = await asyncio.wait(
                    {gathered, watcher}, return_when=asyncio.FIRST_COMPLETED
                )
                if gathered not in done:
                    logger.info(
                        f"Workflow {workflow.id} cancelled, interrupting {len(attempts)} tasks"
                    )
                    for attempt in attempts:
                        attempt.cancel()
                outcomes = await gathered
            finally:
                watcher.cancel()

        for task, outcome in zip(tasks, outcomes, strict=True):
            if isinstance(outcome, Exception):
                # _run_task handles task errors itself; anything here is a bug in a collaborator
                logger.error(f"Task {task.id} crashed: {outcome}")
                if task.status is TaskStatus.RUNNING:
                    self._state.fail_task(task, f"Task {task.id} failed: {outcome}")

    async def _run_task(
        self,
        workflow: Workflow,
        task: Task,
        token: CancellationToken,
        semaphore: asyncio.Semaphore | None,
    ) -> None:
        if semaphore is None:
            await self._attempt_until_done(workflow, task, token)
            return

        async with semaphore:
            await self._attempt_until_done(workflow, task, token)

    async def _attempt_until_done(
        self, workflow: Workflow, task: Task, token: CancellationToken
    ) -> None:
        while not token.is_cancelled:
            error = await self._attempt(workflow, task, token)
            if error is None or task.status is not TaskStatus.FAILED or token.is_cancelled:
                return

            budget = min(task.max_retries, self._config.retry_policy.max_retries)
            if not error.is_retryable() or task.retry_count >= budget:
                logger.error(
                    f"Task {task.id} failed after {task.retry_count} retries: {error}"
                )
                return

            self._state.retry_task(task)
            logger.warning(
                f"Retrying task {task.id} ({task.retry_count}/{budget}): {error}"
            )

            delay = self._config.retry_policy.delay_for_retry(task.retry_count)
            if delay > 0:
                await asyncio.sleep(delay)

    async def _attempt(
        self, workflow: Workflow, task: Task, token: CancellationToken
    ) -> TaskError | None:
        """Run one attempt. Returns None on success, the error otherwise."""
        try:
            worker = self._registry.require(task)
        except DispatchError as e:
            self._state.fail_task(task, f"Task {task.id} failed: {e}")
            return e

        self._state.start_task(task, worker.name)
        logger.debug(f"Dispatching task {task.id} to {worker.name}")
        started = time.perf_counter()

        try:
            await validate_task(task, worker, workflow.context, self._files)
            result = await self._execute(worker, task, workflow, token)
            if not result.success:
                raise ExecutionError(result.error or "worker reported failure", task_id=task.id)
            if task.status is not TaskStatus.RUNNING:
                # Cancelled while the worker was finishing
                raise ExecutionError("cancelled", task_id=task.id, retryable=False)
            if task.id in workflow.context.shared_data:
                raise ExecutionError(
                    f"shared context already holds an entry for task {task.id}",
                    task_id=task.id,
                    retryable=False,
                )
            await self._apply_files(result)
            self._complete(workflow, task, result)
        except TaskError as e:
            error = e
        except asyncio.CancelledError:
            self._registry.record(worker.kind, False, _elapsed_ms(started))
            if task.status is TaskStatus.RUNNING:
                self._state.fail_task(task, f"Task {task.id} failed: cancelled")
            raise
        except Exception as e:
            error = ExecutionError(str(e) or type(e).__name__, task_id=task.id)
        else:
            self._registry.record(worker.kind, True, _elapsed_ms(started))
            return None

        self._registry.record(worker.kind, False, _elapsed_ms(started))
        if task.status is TaskStatus.RUNNING:
            self._state.fail_task(task, f"Task {task.id} failed: {error}")
        return error

    async def _execute(
        self, worker: Worker, task: Task, workflow: Workflow, token: CancellationToken
    ) -> WorkerResult:
        timeout = self._config.task_timeout
        if timeout is None:
            return await worker.execute(task, workflow.context, token)

        try:
            return await asyncio.wait_for(worker.execute(task, workflow.context, token), timeout)
        except TimeoutError:
            raise ExecutionError(f"timed out after {timeout}s", task_id=task.id) from None

    async def _apply_files(self, result: WorkerResult) -> None:
        if self._files is None:
            return
        for change in result.files:
            await self._files.apply(change)

    def _complete(self, workflow: Workflow, task: Task, result: WorkerResult) -> None:
        task.result = result
        self._state.complete_task(task)
        workflow.context.shared_data.record(
            task.id,
            SharedEntry(
                result=result.output,
                files=tuple(result.files),
                metadata=dict(result.metadata),
            ),
        )
        logger.debug(f"Task {task.id} completed")

    def _build_result(
        self, workflow: Workflow, critical: CriticalFailure | None, paused: bool
    ) -> WorkflowResult:
        results = []
        errors = []
        for task in workflow.tasks.values():
            if task.status is TaskStatus.COMPLETED and task.result is not None:
                results.append(
                    TaskResult(
                        task_id=task.id,
                        status="success",
                        output=task.result.output,
                        files=tuple(task.result.files),
                    )
                )
            elif task.status is TaskStatus.FAILED:
                results.append(TaskResult(task_id=task.id, status="error", error=task.error))
                if task.error:
                    errors.append(task.error)

        if critical is not None:
            errors.append(CRITICAL_FAILURE_MESSAGE)

        completed = workflow.completed_count()

        if critical is not None:
            status = ResultStatus.FAILED
        elif paused:
            status = ResultStatus.PARTIAL
        elif not errors and completed == workflow.total_tasks:
            status = ResultStatus.COMPLETED
        elif completed > 0:
            status = ResultStatus.PARTIAL
        else:
            status = ResultStatus.FAILED

        return WorkflowResult(
            workflow_id=workflow.id,
            status=status,
            completed_tasks=completed,
            total_tasks=workflow.total_tasks,
            results=tuple(results),
            errors=tuple(errors),
            critical_failure=critical is not None,
            paused=paused,
        )


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
