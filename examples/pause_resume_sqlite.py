"""
Pause and Resume with SQLite Persistence

Starts a three-batch workflow backed by SQLite, pauses it while the first
batch is still running, then resumes it. The paused workflow is stored
durably, so the resume picks up from the first unprocessed batch and the
already completed task is not executed again.

Run with:
```bash
PYTHONPATH=src python examples/pause_resume_sqlite.py
```
"""

import asyncio
import tempfile
from pathlib import Path

from pyconvoy import (
    AgentContext,
    ConversionPlan,
    FileNode,
    FunctionWorker,
    Orchestrator,
    Task,
    TechStack,
)
from pyconvoy.models import WorkerResult
from pyconvoy.storage import SqliteWorkflowStore

executions: list[str] = []


async def slow_step(task, context, token):
    executions.append(task.id)
    print(f"  running {task.id}")
    await asyncio.sleep(0.2)
    return WorkerResult.ok(output=f"{task.id} converted")


async def main():
    db_path = Path(tempfile.mkdtemp()) / "convoy.db"
    store = SqliteWorkflowStore(str(db_path))
    await store.connect()

    orchestrator = Orchestrator(store=store)
    orchestrator.register_worker(FunctionWorker("converter", "code_generation", slow_step))

    plan = ConversionPlan(
        id="plan-chain",
        project_id="chain",
        tasks=[
            Task("models", "code_generation", "Convert models", worker_kind="code_generation"),
            Task(
                "services",
                "code_generation",
                "Convert services",
                dependencies=["models"],
                worker_kind="code_generation",
            ),
            Task(
                "routes",
                "code_generation",
                "Convert routes",
                dependencies=["services"],
                worker_kind="code_generation",
            ),
        ],
    )
    context = AgentContext(
        project_id="chain",
        source_files=FileNode("root", "/", kind="directory"),
        source_tech_stack=TechStack("javascript"),
        target_tech_stack=TechStack("typescript"),
    )

    workflow = await orchestrator.create_workflow(plan, context)

    run = asyncio.create_task(orchestrator.execute_workflow(workflow.id))
    await asyncio.sleep(0.05)
    await orchestrator.pause_workflow(workflow.id)
    paused = await run
    print(f"After pause: {paused.status}, {paused.completed_tasks}/{paused.total_tasks} done")

    snapshot = await orchestrator.get_workflow_status(workflow.id)
    print(f"Stored status: {snapshot.status}, progress {snapshot.progress}%")

    resumed = await orchestrator.resume_workflow(workflow.id)
    print(f"After resume: {resumed.status}, executions: {executions}")
    assert executions == ["models", "services", "routes"]

    await orchestrator.close()


if __name__ == "__main__":
    asyncio.run(main())
