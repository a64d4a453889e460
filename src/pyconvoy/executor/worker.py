"""Worker protocol and adapters.

A worker is any object that provides a capability for some task kinds. No
base class is required: the executor only relies on the attributes and
coroutines of the ``Worker`` protocol.

Matching rule (``handles``):
- the task's ``worker_kind`` equals the worker's ``kind``, or
- the task's ``kind`` is one of the worker's ``capabilities``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Protocol, runtime_checkable

from pyconvoy.executor.cancellation import CancellationToken
from pyconvoy.models import AgentContext, Task, TaskKind, WorkerResult

logger = logging.getLogger(__name__)


@runtime_checkable
class Worker(Protocol):
    """Capability provider the executor dispatches tasks to.

    ``validate`` and ``execute`` may raise; the executor turns any
    exception into a task failure.
    """

    name: str
    kind: str
    capabilities: frozenset[str]

    def can_handle(self, task: Task) -> bool: ...

    async def validate(self, task: Task, context: AgentContext) -> bool: ...

    async def execute(
        self, task: Task, context: AgentContext, token: CancellationToken
    ) -> WorkerResult: ...


def handles(worker: Worker, task: Task) -> bool:
    """Default matching rule shared by the bundled workers."""
    if task.worker_kind and task.worker_kind == worker.kind:
        return True
    return task.kind is not None and task.kind.value in worker.capabilities


ExecuteFn = Callable[[Task, AgentContext, CancellationToken], Awaitable[WorkerResult]]
ValidateFn = Callable[[Task, AgentContext], Awaitable[bool]]


class FunctionWorker:
    """Wrap an async callable as a Worker.

    Composition over inheritance: the callable does the work, this class
    supplies the identity and matching the registry needs.

    Example:
        ```python
        async def analyze(task, context, token):
            return WorkerResult.ok(output={"files": 12})

        worker = FunctionWorker("analyzer", "analysis", analyze, capabilities=["analysis"])
        registry.register(worker)
        ```
    """

    def __init__(
        self,
        name: str,
        kind: str,
        execute: ExecuteFn,
        capabilities: Iterable[str | TaskKind] = (),
        validate: ValidateFn | None = None,
    ):
        self.name = name
        self.kind = kind
        self.capabilities = frozenset(
            c.value if isinstance(c, TaskKind) else c for c in capabilities
        )
        self._execute = execute
        self._validate = validate

    def can_handle(self, task: Task) -> bool:
        return handles(self, task)

    async def validate(self, task: Task, context: AgentContext) -> bool:
        if self._validate is None:
            return True
        return await self._validate(task, context)

    async def execute(
        self, task: Task, context: AgentContext, token: CancellationToken
    ) -> WorkerResult:
        logger.debug(f"Worker {self.name} executing task {task.id}")
        return await self._execute(task, context, token)

    def __repr__(self) -> str:
        return (
            f"FunctionWorker(name={self.name!r}, kind={self.kind!r}, "
            f"capabilities={sorted(self.capabilities)!r})"
        )
