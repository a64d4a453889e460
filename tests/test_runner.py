"""Tests for the batch executor."""

import asyncio
import warnings

import pytest
from conftest import ScriptedWorker, make_context, make_plan, make_task

from pyconvoy.config import OrchestratorConfig
from pyconvoy.errors import CircularDependencyWarning, InvalidTransitionError
from pyconvoy.executor.registry import WorkerRegistry
from pyconvoy.executor.runner import CRITICAL_FAILURE_MESSAGE, WorkflowExecutor
from pyconvoy.files import InMemoryFileTree
from pyconvoy.models import (
    ChangeKind,
    FileChange,
    ResultStatus,
    RetryPolicy,
    SharedEntry,
    TaskKind,
    TaskStatus,
    Workflow,
    WorkerResult,
    WorkflowStatus,
)


def _workflow(tasks, workflow_id="wf-1") -> Workflow:
    return Workflow.from_plan(workflow_id, make_plan(tasks), make_context())


def _executor(*workers, **config) -> WorkflowExecutor:
    registry = WorkerRegistry()
    for worker in workers:
        registry.register(worker)
    return WorkflowExecutor(registry, OrchestratorConfig(**config))


@pytest.mark.asyncio
async def test_all_tasks_complete():
    worker = ScriptedWorker("code_generation")
    workflow = _workflow([make_task("a"), make_task("b", dependencies=["a"]), make_task("c")])

    result = await _executor(worker).run(workflow)

    assert result.status is ResultStatus.COMPLETED
    assert result.is_success()
    assert result.completed_tasks == 3
    assert result.total_tasks == 3
    assert result.errors == ()
    assert [r.task_id for r in result.results] == ["a", "b", "c"]
    assert all(r.status == "success" for r in result.results)

    assert workflow.status is WorkflowStatus.COMPLETED
    assert workflow.progress == 100
    assert workflow.completed_at is not None
    assert workflow.context.shared_data["a"].result == "a-output"
    assert workflow.context.shared_data["b"].metadata == {"attempt": 1}


@pytest.mark.asyncio
async def test_dependencies_complete_before_dependents_start():
    order = []

    class OrderedWorker(ScriptedWorker):
        async def execute(self, task, context, token):
            for dep in task.dependencies:
                assert dep in context.shared_data
            order.append(task.id)
            return await super().execute(task, context, token)

    workflow = _workflow(
        [
            make_task("analyze"),
            make_task("api", dependencies=["analyze"]),
            make_task("ui", dependencies=["analyze"]),
            make_task("integrate", dependencies=["api", "ui"]),
        ]
    )

    result = await _executor(OrderedWorker("code_generation")).run(workflow)

    assert result.is_success()
    assert order[0] == "analyze"
    assert order[-1] == "integrate"


@pytest.mark.asyncio
async def test_empty_workflow_completes():
    workflow = _workflow([])
    result = await _executor().run(workflow)

    assert result.status is ResultStatus.COMPLETED
    assert workflow.progress == 0
    assert workflow.status is WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_fail_once_then_succeed():
    worker = ScriptedWorker("code_generation", failures=1)
    workflow = _workflow([make_task("a")])

    result = await _executor(worker).run(workflow)

    task = workflow.tasks["a"]
    assert task.status is TaskStatus.COMPLETED
    assert task.retry_count == 1
    assert task.error is None
    assert workflow.context.shared_data["a"].result == "a-output"
    assert result.is_success()
    assert worker.calls == ["a", "a"]


@pytest.mark.asyncio
async def test_always_failing_task_exhausts_budget():
    worker = ScriptedWorker("code_generation", failures=-1)
    workflow = _workflow([make_task("a", max_retries=3)])

    result = await _executor(worker).run(workflow)

    task = workflow.tasks["a"]
    assert task.status is TaskStatus.FAILED
    assert task.retry_count == 3
    assert len(worker.calls) == 4
    assert result.errors == ("Task a failed: a attempt 4 failed",)
    assert result.status is ResultStatus.FAILED
    assert "a" not in workflow.context.shared_data
    assert workflow.status is WorkflowStatus.FAILED


@pytest.mark.asyncio
async def test_zero_retry_budget_runs_once():
    worker = ScriptedWorker("code_generation", failures=-1)
    workflow = _workflow([make_task("a", max_retries=0)])

    await _executor(worker).run(workflow)

    assert workflow.tasks["a"].retry_count == 0
    assert worker.calls == ["a"]


@pytest.mark.asyncio
async def test_no_retry_policy_disables_retries():
    worker = ScriptedWorker("code_generation", failures=-1)
    workflow = _workflow([make_task("a", max_retries=3)])

    result = await _executor(worker, retry_policy=RetryPolicy.NONE).run(workflow)

    task = workflow.tasks["a"]
    assert task.status is TaskStatus.FAILED
    assert task.retry_count == 0
    assert worker.calls == ["a"]
    assert result.errors == ("Task a failed: a attempt 1 failed",)


@pytest.mark.asyncio
async def test_policy_caps_task_retry_budget():
    worker = ScriptedWorker("code_generation", failures=-1)
    workflow = _workflow([make_task("a", max_retries=3), make_task("b", max_retries=0)])

    await _executor(worker, retry_policy=RetryPolicy(max_retries=1)).run(workflow)

    assert workflow.tasks["a"].retry_count == 1
    assert workflow.tasks["b"].retry_count == 0
    assert worker.calls.count("a") == 2
    assert worker.calls.count("b") == 1


@pytest.mark.asyncio
async def test_worker_exception_becomes_task_error():
    worker = ScriptedWorker("code_generation", failures=-1, raise_errors=True)
    workflow = _workflow([make_task("a", max_retries=1)])

    result = await _executor(worker).run(workflow)

    assert workflow.tasks["a"].status is TaskStatus.FAILED
    assert result.errors == ("Task a failed: a attempt 2 exploded",)
    assert result.result_for("a").status == "error"


@pytest.mark.asyncio
async def test_critical_failure_aborts_remaining_batches():
    analyzer = ScriptedWorker("analysis", failures=-1)
    generator = ScriptedWorker("code_generation")
    workflow = _workflow(
        [
            make_task("analyze", TaskKind.ANALYSIS, max_retries=0),
            make_task("gen", dependencies=["analyze"]),
            make_task("validate", TaskKind.VALIDATION, dependencies=["gen"]),
        ]
    )

    result = await _executor(analyzer, generator).run(workflow)

    assert result.status is ResultStatus.FAILED
    assert result.critical_failure is True
    assert CRITICAL_FAILURE_MESSAGE in result.errors
    assert workflow.tasks["gen"].status is TaskStatus.PENDING
    assert workflow.tasks["validate"].status is TaskStatus.PENDING
    assert generator.calls == []
    assert workflow.status is WorkflowStatus.FAILED


@pytest.mark.asyncio
async def test_critical_kinds_are_configurable():
    analyzer = ScriptedWorker("analysis", failures=-1)
    generator = ScriptedWorker("code_generation")
    workflow = _workflow(
        [
            make_task("analyze", TaskKind.ANALYSIS, max_retries=0),
            make_task("gen"),
            make_task("after", dependencies=["gen"]),
        ]
    )

    result = await _executor(analyzer, generator, critical_kinds=frozenset()).run(workflow)

    assert result.critical_failure is False
    assert result.status is ResultStatus.PARTIAL
    assert workflow.tasks["after"].status is TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_dependents_of_failed_task_are_skipped():
    class PickyWorker(ScriptedWorker):
        async def execute(self, task, context, token):
            if task.id == "bad":
                return WorkerResult.fail("nope")
            return await super().execute(task, context, token)

    worker = PickyWorker("code_generation")
    workflow = _workflow(
        [
            make_task("good"),
            make_task("bad", max_retries=0),
            make_task("after_bad", dependencies=["bad"]),
            make_task("after_after", dependencies=["after_bad"]),
            make_task("after_good", dependencies=["good"]),
        ]
    )

    result = await _executor(worker).run(workflow)

    assert workflow.tasks["after_bad"].status is TaskStatus.SKIPPED
    assert workflow.tasks["after_after"].status is TaskStatus.SKIPPED
    assert workflow.tasks["after_good"].status is TaskStatus.COMPLETED
    assert "after_bad" not in worker.calls
    assert result.status is ResultStatus.PARTIAL
    assert result.errors == ("Task bad failed: nope",)
    assert workflow.progress == 40


@pytest.mark.asyncio
async def test_missing_worker_fails_without_retry():
    workflow = _workflow([make_task("i", TaskKind.INTEGRATION)])

    result = await _executor(ScriptedWorker("analysis")).run(workflow)

    task = workflow.tasks["i"]
    assert task.status is TaskStatus.FAILED
    assert task.retry_count == 0
    assert "No suitable worker" in task.error
    assert result.status is ResultStatus.FAILED


@pytest.mark.asyncio
async def test_missing_input_retries_then_fails():
    worker = ScriptedWorker("code_generation")
    workflow = _workflow([make_task("a", input_refs=["/nope.js"], max_retries=2)])

    result = await _executor(worker).run(workflow)

    task = workflow.tasks["a"]
    assert task.status is TaskStatus.FAILED
    assert task.retry_count == 2
    assert worker.calls == []
    assert result.errors == ("Task a failed: Input file not found: /nope.js",)


@pytest.mark.asyncio
async def test_rejected_by_worker_validate_is_retried():
    worker = ScriptedWorker("code_generation", accept=False)
    workflow = _workflow([make_task("a", max_retries=1)])

    await _executor(worker).run(workflow)

    assert workflow.tasks["a"].retry_count == 1
    assert workflow.tasks["a"].status is TaskStatus.FAILED


@pytest.mark.asyncio
async def test_concurrency_bounded_by_config():
    worker = ScriptedWorker("code_generation", delay=0.02)
    workflow = _workflow([make_task(f"t{i}") for i in range(6)])

    result = await _executor(worker, max_concurrent_tasks=2).run(workflow)

    assert result.is_success()
    assert worker.peak == 2


@pytest.mark.asyncio
async def test_unbounded_concurrency():
    worker = ScriptedWorker("code_generation", delay=0.02)
    workflow = _workflow([make_task(f"t{i}") for i in range(6)])

    await _executor(worker, max_concurrent_tasks=None).run(workflow)

    assert worker.peak == 6


@pytest.mark.asyncio
async def test_sibling_failure_does_not_cancel_batch():
    class HalfWorker(ScriptedWorker):
        async def execute(self, task, context, token):
            if task.id.startswith("bad"):
                raise RuntimeError("broken")
            await asyncio.sleep(0.01)
            return await super().execute(task, context, token)

    workflow = _workflow(
        [make_task("bad1", max_retries=0), make_task("ok1"), make_task("ok2")]
    )

    result = await _executor(HalfWorker("code_generation")).run(workflow)

    assert workflow.tasks["ok1"].status is TaskStatus.COMPLETED
    assert workflow.tasks["ok2"].status is TaskStatus.COMPLETED
    assert result.completed_tasks == 2


@pytest.mark.asyncio
async def test_task_timeout():
    worker = ScriptedWorker("code_generation", delay=1.0)
    workflow = _workflow([make_task("slow", max_retries=0)])

    result = await _executor(worker, task_timeout=0.05).run(workflow)

    assert workflow.tasks["slow"].status is TaskStatus.FAILED
    assert "timed out" in result.errors[0]


@pytest.mark.asyncio
async def test_cycle_batch_is_attempted():
    worker = ScriptedWorker("code_generation")
    workflow = _workflow([make_task("A", dependencies=["B"]), make_task("B", dependencies=["A"])])

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", CircularDependencyWarning)
        result = await _executor(worker).run(workflow)

    assert result.is_success()
    assert sorted(worker.calls) == ["A", "B"]


@pytest.mark.asyncio
async def test_file_changes_forwarded_to_file_tree():
    class WritingWorker(ScriptedWorker):
        async def execute(self, task, context, token):
            return WorkerResult.ok(
                output="done",
                files=[
                    FileChange("/src/app.ts", ChangeKind.CREATE, "export {}"),
                    FileChange("/src/app.js", ChangeKind.DELETE),
                ],
            )

    files = InMemoryFileTree.from_node(make_context().source_files)
    registry = WorkerRegistry()
    registry.register(WritingWorker("code_generation"))
    executor = WorkflowExecutor(registry, files=files)
    workflow = _workflow([make_task("convert", input_refs=["/src/app.js"])])

    result = await executor.run(workflow)

    assert result.is_success()
    assert "/src/app.ts" in files
    assert "/src/app.js" not in files
    assert [c.path for c in files.changes] == ["/src/app.ts", "/src/app.js"]
    assert workflow.context.shared_data["convert"].files[0].path == "/src/app.ts"
    assert result.result_for("convert").files[0].change_kind is ChangeKind.CREATE


@pytest.mark.asyncio
async def test_metrics_recorded_per_attempt():
    registry = WorkerRegistry()
    registry.register(ScriptedWorker("code_generation", failures=1))
    executor = WorkflowExecutor(registry)

    await executor.run(_workflow([make_task("a"), make_task("b")]))

    metrics = registry.metrics()["code_generation"]
    assert metrics.execution_count == 4
    assert metrics.success_count == 2


@pytest.mark.asyncio
async def test_token_passed_to_worker():
    worker = ScriptedWorker("code_generation")
    workflow = _workflow([make_task("a")])

    await _executor(worker).run(workflow)

    assert len(worker.tokens) == 1
    assert worker.tokens[0].is_cancelled is False


@pytest.mark.asyncio
async def test_finished_workflow_cannot_run_again():
    workflow = _workflow([make_task("a")])
    executor = _executor(ScriptedWorker("code_generation"))
    await executor.run(workflow)

    with pytest.raises(InvalidTransitionError):
        await executor.run(workflow)


@pytest.mark.asyncio
async def test_workflows_from_one_context_keep_separate_outputs():
    context = make_context()
    plan = make_plan([make_task("a"), make_task("b", dependencies=["a"])])
    first = Workflow.from_plan("wf-1", plan, context)
    second = Workflow.from_plan("wf-2", plan, context)
    executor = _executor(ScriptedWorker("code_generation"))

    first_result = await executor.run(first)
    second_result = await executor.run(second)

    assert first_result.is_success()
    assert second_result.is_success()
    assert second_result.errors == ()
    assert first.context.shared_data is not second.context.shared_data
    assert sorted(first.context.shared_data) == ["a", "b"]
    assert sorted(second.context.shared_data) == ["a", "b"]
    assert len(context.shared_data) == 0
    assert second.context.project_id == context.project_id


@pytest.mark.asyncio
async def test_existing_shared_entry_fails_task_without_retry():
    worker = ScriptedWorker("code_generation")
    workflow = _workflow([make_task("a")])
    workflow.context.shared_data.record("a", SharedEntry(result="stale"))

    result = await _executor(worker).run(workflow)

    task = workflow.tasks["a"]
    assert task.status is TaskStatus.FAILED
    assert task.retry_count == 0
    assert worker.calls == ["a"]
    assert workflow.context.shared_data["a"].result == "stale"
    assert not result.is_success()
