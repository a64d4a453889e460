"""In-memory workflow store.

Design Pattern: Adapter Pattern
InMemoryWorkflowStore adapts a dictionary to the WorkflowStore interface.

Instance is immediately usable after __init__.
"""

from __future__ import annotations

import asyncio
from datetime import datetime

from pyconvoy.models import Workflow
from pyconvoy.storage.base import WorkflowStore


class InMemoryWorkflowStore(WorkflowStore):
    """In-memory store for tests and single-process deployments.

    Returns the stored object itself, so callers observe executor progress
    without saving.

    Usage:
        store = InMemoryWorkflowStore()
        await store.save(workflow)
    """

    def __init__(self):
        self._workflows: dict[str, Workflow] = {}
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        """Return string representation of storage instance."""
        return f"InMemoryWorkflowStore({len(self._workflows)} workflows)"

    async def save(self, workflow: Workflow) -> None:
        async with self._lock:
            self._workflows[workflow.id] = workflow

    async def get(self, workflow_id: str) -> Workflow | None:
        async with self._lock:
            return self._workflows.get(workflow_id)

    async def delete(self, workflow_id: str) -> bool:
        async with self._lock:
            return self._workflows.pop(workflow_id, None) is not None

    async def list_workflows(self) -> list[Workflow]:
        async with self._lock:
            return list(self._workflows.values())

    async def purge_completed_before(self, cutoff: datetime) -> list[str]:
        async with self._lock:
            expired = [
                workflow_id
                for workflow_id, workflow in self._workflows.items()
                if workflow.completed_at is not None and workflow.completed_at < cutoff
            ]
            for workflow_id in expired:
                del self._workflows[workflow_id]
            return expired

    async def reset(self) -> None:
        """Clear all data."""
        async with self._lock:
            self._workflows.clear()

    async def close(self) -> None:
        pass
