"""Storage backends for workflow persistence.

Provides multiple storage implementations behind a common interface:
    - WorkflowStore: Abstract interface
    - InMemoryWorkflowStore: In-memory reference store
    - SqliteWorkflowStore: SQLite-backed storage
    - RedisWorkflowStore: Redis-backed shared storage

Design: Adapter Pattern + Dependency Inversion
    All storage implementations adapt to the WorkflowStore interface.
    The orchestrator depends on the abstraction, so backends can be
    swapped without touching scheduling logic.
"""

from pyconvoy.storage.base import StorageError, WorkflowStore
from pyconvoy.storage.memory import InMemoryWorkflowStore

# Durable backends are imported lazily so aiosqlite and redis are only
# loaded when used


def __getattr__(name: str):
    """Lazy import durable storage implementations."""
    if name == "SqliteWorkflowStore":
        from pyconvoy.storage.sqlite import SqliteWorkflowStore

        return SqliteWorkflowStore
    elif name == "RedisWorkflowStore":
        from pyconvoy.storage.redis import RedisWorkflowStore

        return RedisWorkflowStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "StorageError",
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "SqliteWorkflowStore",
    "RedisWorkflowStore",
]
