"""
Conversion Pipeline: Express to Fastify

A five-task conversion plan executed batch by batch. The two code
generation tasks share a batch and run concurrently; the flaky dependency
updater fails once and is retried inside the same pass.

```text
                  ┌── convert_routes ──┐
analyze ─────────┤                    ├── validate
                  └── convert_models ──┤
                                       │
update_deps ───────────────────────────┘
```

Batches:
- Batch 0: analyze, update_deps
- Batch 1: convert_routes, convert_models
- Batch 2: validate

Run with:
```bash
PYTHONPATH=src python examples/express_to_fastify.py
```
"""

import asyncio
import logging

from pyconvoy import (
    AgentContext,
    ChangeKind,
    ConversionPlan,
    FileChange,
    FileNode,
    FunctionWorker,
    InMemoryFileTree,
    Orchestrator,
    RetryPolicy,
    Task,
    TaskGraph,
    TechStack,
    WorkerResult,
)

# =============================================================================
# Workers
# =============================================================================


async def analyze(task, context, token):
    files = [node.path for node in context.source_files.walk() if not node.is_directory]
    print(f"[analysis] {len(files)} source files")
    await asyncio.sleep(0.05)
    return WorkerResult.ok(output={"files": files})


async def generate_code(task, context, token):
    analysis = context.shared_data["analyze"].result
    print(f"[codegen] {task.id} using {len(analysis['files'])} analysed files")
    await asyncio.sleep(0.05)

    changes = [
        FileChange(ref.replace(".js", ".ts"), ChangeKind.CREATE, f"// converted from {ref}")
        for ref in task.input_refs
    ]
    return WorkerResult.ok(output=f"{task.id} done", files=changes)


_dependency_attempts = 0


async def update_dependencies(task, context, token):
    global _dependency_attempts
    _dependency_attempts += 1
    print(f"[deps] attempt {_dependency_attempts}")
    if _dependency_attempts == 1:
        return WorkerResult.fail("registry timed out")
    return WorkerResult.ok(output={"express": "removed", "fastify": "^4.0.0"})


async def validate(task, context, token):
    generated = sorted(context.shared_data)
    print(f"[validation] checking outputs of {generated}")
    return WorkerResult.ok(output={"errors": 0})


# =============================================================================
# Plan
# =============================================================================


def build_plan() -> ConversionPlan:
    return ConversionPlan(
        id="plan-express-fastify",
        project_id="shop-api",
        tasks=[
            Task("analyze", "analysis", "Analyze the Express app", worker_kind="analysis"),
            Task(
                "update_deps",
                "dependency_update",
                "Swap Express packages for Fastify",
                worker_kind="dependency_update",
            ),
            Task(
                "convert_routes",
                "code_generation",
                "Convert route handlers",
                input_refs=["/src/routes.js"],
                dependencies=["analyze"],
                worker_kind="code_generation",
            ),
            Task(
                "convert_models",
                "code_generation",
                "Convert data models",
                input_refs=["/src/models.js"],
                dependencies=["analyze"],
                worker_kind="code_generation",
            ),
            Task(
                "validate",
                "validation",
                "Type-check the converted project",
                dependencies=["convert_routes", "convert_models", "update_deps"],
                worker_kind="validation",
            ),
        ],
    )


def build_context() -> AgentContext:
    root = FileNode(
        "root",
        "/",
        kind="directory",
        children=[
            FileNode(
                "src",
                "/src",
                kind="directory",
                children=[
                    FileNode("routes.js", "/src/routes.js", content="app.get('/', ...)"),
                    FileNode("models.js", "/src/models.js", content="module.exports = {}"),
                ],
            ),
            FileNode("package.json", "/package.json", content='{"dependencies": {}}'),
        ],
    )
    return AgentContext(
        project_id="shop-api",
        source_files=root,
        source_tech_stack=TechStack("javascript", framework="express"),
        target_tech_stack=TechStack("typescript", framework="fastify"),
    )


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    context = build_context()
    files = InMemoryFileTree.from_node(context.source_files)

    orchestrator = Orchestrator(files=files).with_retry_policy(RetryPolicy.BACKOFF)
    orchestrator.register_worker(FunctionWorker("analyzer", "analysis", analyze))
    orchestrator.register_worker(FunctionWorker("codegen", "code_generation", generate_code))
    orchestrator.register_worker(
        FunctionWorker("deps", "dependency_update", update_dependencies)
    )
    orchestrator.register_worker(FunctionWorker("checker", "validation", validate))

    plan = build_plan()
    print(TaskGraph.from_tasks(plan.tasks).level_graph())

    workflow = await orchestrator.create_workflow(plan, context)
    result = await orchestrator.execute_workflow(workflow.id)

    print("=" * 70)
    print(f"Status: {result.status} ({result.completed_tasks}/{result.total_tasks})")
    print(f"Generated files: {[c.path for c in files.changes]}")
    for kind, metrics in orchestrator.get_worker_metrics().items():
        print(f"  {kind:<18} runs={metrics.execution_count} ok={metrics.success_rate:.0%}")

    await orchestrator.close()


if __name__ == "__main__":
    asyncio.run(main())
