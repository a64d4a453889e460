"""Task and plan validation.

``validate_plan`` runs once, synchronously, when a workflow is created and
rejects plans the scheduler could not interpret. ``validate_task`` runs
before every attempt and decides whether a validation failure is worth a
retry:

| Failure                         | Retryable |
|---------------------------------|-----------|
| id, kind or description missing | no        |
| worker cannot handle the task   | no        |
| input reference not found       | yes       |
| worker.validate False / raised  | yes       |
"""

from __future__ import annotations

import logging

from pyconvoy.errors import PlanError, ValidationError
from pyconvoy.executor.worker import Worker
from pyconvoy.files import FileTree
from pyconvoy.models import AgentContext, ConversionPlan, Task

logger = logging.getLogger(__name__)


def validate_plan(plan: ConversionPlan) -> None:
    """
    Check that a plan's tasks form a well-defined graph.

    Cycles are not rejected here: the scheduler degrades them into one
    best-effort batch.

    Raises:
        PlanError: empty or duplicate ids, unknown or self dependencies
    """
    task_ids = [task.id for task in plan.tasks]
    unique_ids = set(task_ids)

    if any(not task_id for task_id in task_ids):
        raise PlanError(f"Plan {plan.id}: every task needs a non-empty id")

    if len(unique_ids) != len(task_ids):
        duplicates = sorted({task_id for task_id in task_ids if task_ids.count(task_id) > 1})
        raise PlanError(f"Plan {plan.id}: duplicate task ids: {', '.join(duplicates)}")

    for task in plan.tasks:
        for dependency in task.dependencies:
            if dependency == task.id:
                raise PlanError(f"Plan {plan.id}: task {task.id} cannot depend on itself")
            if dependency not in unique_ids:
                raise PlanError(
                    f"Plan {plan.id}: task {task.id} depends on unknown task {dependency}"
                )


async def validate_task(
    task: Task,
    worker: Worker,
    context: AgentContext,
    files: FileTree | None = None,
) -> None:
    """
    Check that ``worker`` can run ``task`` right now.

    Input references resolve against ``files`` when given, otherwise
    against the context's source tree.

    Raises:
        ValidationError: with ``is_retryable()`` set per the table above
    """
    if not task.id or task.kind is None or not task.description:
        raise ValidationError(
            f"Task {task.id or '<unnamed>'} is missing required fields (id, kind, description)",
            task_id=task.id,
            retryable=False,
        )

    if not worker.can_handle(task):
        raise ValidationError(
            f"Worker {worker.name} cannot handle task {task.id} ({task.kind})",
            task_id=task.id,
            retryable=False,
        )

    for ref in task.input_refs:
        if files is not None:
            found = await files.resolve(ref) is not None
        else:
            found = context.source_files.find(ref) is not None

        if not found:
            raise ValidationError(f"Input file not found: {ref}", task_id=task.id)

    try:
        accepted = await worker.validate(task, context)
    except Exception as e:
        raise ValidationError(
            f"Worker {worker.name} rejected task {task.id}: {e}", task_id=task.id
        ) from e

    if not accepted:
        raise ValidationError(f"Worker {worker.name} rejected task {task.id}", task_id=task.id)
