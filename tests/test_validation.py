"""Tests for plan and task validation."""

import pytest
from conftest import ScriptedWorker, make_context, make_plan, make_task

from pyconvoy.errors import PlanError, ValidationError
from pyconvoy.executor.validation import validate_plan, validate_task
from pyconvoy.files import InMemoryFileTree
from pyconvoy.models import Task, TaskKind

# ==============================================================================
# Plan validation
# ==============================================================================


def test_valid_plan_passes():
    plan = make_plan([make_task("a"), make_task("b", dependencies=["a"])])
    validate_plan(plan)


def test_cyclic_plan_is_not_rejected():
    plan = make_plan([make_task("a", dependencies=["b"]), make_task("b", dependencies=["a"])])
    validate_plan(plan)


def test_duplicate_ids_rejected():
    plan = make_plan([make_task("a"), make_task("a")])
    with pytest.raises(PlanError, match="duplicate task ids: a"):
        validate_plan(plan)


def test_empty_id_rejected():
    plan = make_plan([make_task("")])
    with pytest.raises(PlanError, match="non-empty id"):
        validate_plan(plan)


def test_unknown_dependency_rejected():
    plan = make_plan([make_task("a", dependencies=["ghost"])])
    with pytest.raises(PlanError, match="unknown task ghost"):
        validate_plan(plan)


def test_self_dependency_rejected():
    plan = make_plan([make_task("a", dependencies=["a"])])
    with pytest.raises(PlanError, match="cannot depend on itself"):
        validate_plan(plan)


# ==============================================================================
# Task validation
# ==============================================================================


@pytest.mark.asyncio
async def test_valid_task_passes():
    task = make_task("gen", input_refs=["/src/app.js"])
    await validate_task(task, ScriptedWorker("code_generation"), make_context())


@pytest.mark.asyncio
async def test_missing_fields_not_retryable():
    task = Task(id="t", kind=None, description="", worker_kind="code_generation")

    with pytest.raises(ValidationError) as exc_info:
        await validate_task(task, ScriptedWorker("code_generation"), make_context())

    assert exc_info.value.is_retryable() is False


@pytest.mark.asyncio
async def test_incapable_worker_not_retryable():
    task = make_task("a", TaskKind.ANALYSIS)

    with pytest.raises(ValidationError) as exc_info:
        await validate_task(task, ScriptedWorker("code_generation"), make_context())

    assert exc_info.value.is_retryable() is False


@pytest.mark.asyncio
async def test_missing_input_is_retryable():
    task = make_task("gen", input_refs=["/src/missing.js"])

    with pytest.raises(ValidationError, match="/src/missing.js") as exc_info:
        await validate_task(task, ScriptedWorker("code_generation"), make_context())

    assert exc_info.value.is_retryable() is True


@pytest.mark.asyncio
async def test_inputs_resolve_against_file_tree():
    """When a file tree is given, it is consulted instead of the context tree."""
    task = make_task("gen", input_refs=["/generated/api.ts"])
    files = InMemoryFileTree({"/generated/api.ts": "export {}"})

    await validate_task(task, ScriptedWorker("code_generation"), make_context(), files)

    with pytest.raises(ValidationError):
        await validate_task(task, ScriptedWorker("code_generation"), make_context())


@pytest.mark.asyncio
async def test_worker_rejection_is_retryable():
    task = make_task("gen")

    with pytest.raises(ValidationError) as exc_info:
        await validate_task(task, ScriptedWorker("code_generation", accept=False), make_context())

    assert exc_info.value.is_retryable() is True


@pytest.mark.asyncio
async def test_worker_validate_raising_is_wrapped():
    class Exploding(ScriptedWorker):
        async def validate(self, task, context):
            raise RuntimeError("boom")

    with pytest.raises(ValidationError, match="boom") as exc_info:
        await validate_task(make_task("gen"), Exploding("code_generation"), make_context())

    assert exc_info.value.is_retryable() is True
    assert isinstance(exc_info.value.__cause__, RuntimeError)
