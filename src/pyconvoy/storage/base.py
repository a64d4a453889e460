"""
WorkflowStore - abstract interface for workflow persistence.

Design Pattern: Adapter Pattern
WorkflowStore defines the target interface that all storage adapters
implement. The in-memory store is the reference backend; SQLite and Redis
adapt durable backends to the same interface so a deployment can switch
without touching scheduling logic.

Design Principle: Dependency Inversion
The orchestrator depends on this abstraction and receives a concrete
store by injection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from pyconvoy.errors import ConvoyError
from pyconvoy.models import Workflow


class StorageError(ConvoyError):
    """Backend unreachable, not connected, or a workflow could not be (de)serialized."""

    pass


class WorkflowStore(ABC):
    """
    Abstract storage interface for workflows.

    Stores hold complete Workflow aggregates keyed by id. Durable backends
    return a fresh copy from ``get``; the in-memory backend returns the
    live object.
    """

    @abstractmethod
    async def save(self, workflow: Workflow) -> None:
        """
        Insert or replace a workflow.

        Args:
            workflow: Workflow to persist
        """
        pass

    @abstractmethod
    async def get(self, workflow_id: str) -> Workflow | None:
        """
        Look up a workflow by id.

        Returns:
            The workflow, or None if it is not stored
        """
        pass

    @abstractmethod
    async def delete(self, workflow_id: str) -> bool:
        """
        Remove a workflow.

        Returns:
            True if the workflow existed
        """
        pass

    @abstractmethod
    async def list_workflows(self) -> list[Workflow]:
        """Return every stored workflow, in creation order."""
        pass

    @abstractmethod
    async def purge_completed_before(self, cutoff: datetime) -> list[str]:
        """
        Delete finished workflows whose ``completed_at`` is before ``cutoff``.

        Workflows without ``completed_at`` (pending, running, paused) are
        never purged.

        Returns:
            Ids of the purged workflows
        """
        pass

    # ========================================================================
    # Utility Operations
    # ========================================================================

    @abstractmethod
    async def reset(self) -> None:
        """
        Clear all data (for testing/demos).

        After reset(), storage is empty but functional.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close storage connections and clean up resources.

        Connections must be explicitly closed, not left to garbage collection.
        """
        pass
