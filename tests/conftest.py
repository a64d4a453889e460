"""
Pytest configuration and fixtures for pyconvoy tests.

Provides reusable fixtures for stores, workers, plans and contexts, plus
hypothesis strategies for dependency graphs.
"""

import asyncio
import shutil
import tempfile
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from hypothesis import strategies as st

from pyconvoy.executor.cancellation import CancellationToken
from pyconvoy.executor.worker import handles
from pyconvoy.models import (
    AgentContext,
    ConversionPlan,
    FileNode,
    Task,
    TaskKind,
    TechStack,
    WorkerResult,
)
from pyconvoy.storage import InMemoryWorkflowStore, SqliteWorkflowStore


def pytest_sessionfinish(session, exitstatus):
    """Force cleanup after all tests complete to prevent CI hanging."""
    import os

    # In CI environments only, force exit to prevent hanging
    if os.getenv("CI") or os.getenv("GITHUB_ACTIONS"):
        os._exit(exitstatus)


# ==============================================================================
# Stores
# ==============================================================================


@pytest.fixture
async def memory_store() -> AsyncGenerator[InMemoryWorkflowStore, None]:
    """In-memory store with automatic cleanup."""
    store = InMemoryWorkflowStore()
    yield store
    await store.reset()


@pytest.fixture
async def sqlite_memory_store() -> AsyncGenerator[SqliteWorkflowStore, None]:
    """SQLite in-memory store with automatic cleanup."""
    store = SqliteWorkflowStore(":memory:")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def temp_db_path():
    """Temporary database file path with automatic cleanup."""
    tmpdir = Path(tempfile.mkdtemp())
    db_path = tmpdir / "test.db"
    yield db_path
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
async def sqlite_file_store(temp_db_path: Path) -> AsyncGenerator[SqliteWorkflowStore, None]:
    """SQLite file-based store with automatic cleanup."""
    store = SqliteWorkflowStore(str(temp_db_path))
    await store.connect()
    yield store
    await store.close()


# ==============================================================================
# Test workers
# ==============================================================================


class ScriptedWorker:
    """Worker whose outcome per attempt is scripted.

    ``failures`` is the number of initial attempts that fail before the
    worker starts succeeding; -1 fails forever. Tracks calls and the peak
    number of concurrent executions.
    """

    def __init__(
        self,
        kind: str,
        capabilities=(),
        failures: int = 0,
        delay: float = 0.0,
        name: str | None = None,
        raise_errors: bool = False,
        accept: bool = True,
    ):
        self.name = name or f"{kind}-worker"
        self.kind = kind
        self.capabilities = frozenset(capabilities) | {kind}
        self.failures = failures
        self.delay = delay
        self.raise_errors = raise_errors
        self.accept = accept

        self.calls: list[str] = []
        self.attempts: dict[str, int] = {}
        self.running = 0
        self.peak = 0
        self.tokens: list[CancellationToken] = []

    def can_handle(self, task: Task) -> bool:
        return handles(self, task)

    async def validate(self, task: Task, context: AgentContext) -> bool:
        return self.accept

    async def execute(
        self, task: Task, context: AgentContext, token: CancellationToken
    ) -> WorkerResult:
        self.calls.append(task.id)
        self.tokens.append(token)
        attempt = self.attempts.get(task.id, 0) + 1
        self.attempts[task.id] = attempt

        self.running += 1
        self.peak = max(self.peak, self.running)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.running -= 1

        if self.failures < 0 or attempt <= self.failures:
            if self.raise_errors:
                raise RuntimeError(f"{task.id} attempt {attempt} exploded")
            return WorkerResult.fail(f"{task.id} attempt {attempt} failed")

        return WorkerResult.ok(output=f"{task.id}-output", metadata={"attempt": attempt})


class BlockingWorker(ScriptedWorker):
    """Worker that blocks until released, for pause and cancel tests."""

    def __init__(self, kind: str, **kwargs):
        super().__init__(kind, **kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, task, context, token):
        self.calls.append(task.id)
        self.tokens.append(token)
        self.started.set()
        await self.release.wait()
        return WorkerResult.ok(output=f"{task.id}-output")


# ==============================================================================
# Builders
# ==============================================================================


def make_task(
    task_id: str,
    kind: TaskKind | str = TaskKind.CODE_GENERATION,
    dependencies=(),
    worker_kind: str | None = None,
    **kwargs,
) -> Task:
    """Task with sensible defaults; worker_kind defaults to the task kind."""
    kind = TaskKind(kind)
    return Task(
        id=task_id,
        kind=kind,
        description=f"Task {task_id}",
        dependencies=list(dependencies),
        worker_kind=worker_kind if worker_kind is not None else kind.value,
        **kwargs,
    )


def make_source_tree() -> FileNode:
    return FileNode(
        name="root",
        path="/",
        kind="directory",
        children=[
            FileNode(
                name="src",
                path="/src",
                kind="directory",
                children=[
                    FileNode(name="app.js", path="/src/app.js", content="console.log('hi')"),
                    FileNode(name="db.js", path="/src/db.js", content="module.exports = {}"),
                ],
            ),
            FileNode(name="package.json", path="/package.json", content="{}"),
        ],
    )


def make_context(project_id: str = "proj-1") -> AgentContext:
    return AgentContext(
        project_id=project_id,
        source_files=make_source_tree(),
        source_tech_stack=TechStack(language="javascript", framework="express"),
        target_tech_stack=TechStack(language="typescript", framework="fastify"),
    )


def make_plan(tasks: list[Task], plan_id: str = "plan-1", project_id: str = "proj-1"):
    return ConversionPlan(id=plan_id, project_id=project_id, tasks=tasks)


@pytest.fixture
def context() -> AgentContext:
    return make_context()


# ==============================================================================
# Hypothesis strategies
# ==============================================================================


@st.composite
def acyclic_graph_strategy(draw, max_nodes: int = 12):
    """Dependency map where every node depends only on earlier nodes."""
    size = draw(st.integers(min_value=0, max_value=max_nodes))
    nodes = [f"t{i}" for i in range(size)]
    graph = {}
    for index, node in enumerate(nodes):
        deps = draw(st.lists(st.sampled_from(nodes[:index]), unique=True)) if index else []
        graph[node] = deps
    return graph


@st.composite
def any_graph_strategy(draw, max_nodes: int = 10):
    """Dependency map that may contain cycles (no self or unknown dependencies)."""
    size = draw(st.integers(min_value=1, max_value=max_nodes))
    nodes = [f"t{i}" for i in range(size)]
    graph = {}
    for node in nodes:
        others = [n for n in nodes if n != node]
        deps = draw(st.lists(st.sampled_from(others), unique=True)) if others else []
        graph[node] = deps
    return graph
