"""SQLite-backed workflow store.

One row per workflow. The aggregate travels as a pickled blob next to
the few columns the store itself filters on:

- WAL journal, so status readers do not block the executor
- status and completed_at indexed for listing and retention
"""

from __future__ import annotations

import asyncio
import pickle
from datetime import datetime
from pathlib import Path

import aiosqlite

from pyconvoy.models import Workflow
from pyconvoy.storage.base import StorageError, WorkflowStore


def _to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


class SqliteWorkflowStore(WorkflowStore):
    """SQLite-backed durable store.

    Nothing touches the database until connect() has been awaited.

    Usage:
        store = SqliteWorkflowStore("workflows.db")
        await store.connect()
        try:
            await store.save(workflow)
        finally:
            await store.close()
    """

    def __init__(self, db_path: str):
        """
        Args:
            db_path: Database file, created on connect; ":memory:" for a private database
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        # One connection shared by every coroutine
        self._lock = asyncio.Lock()

    @classmethod
    async def in_memory(cls) -> SqliteWorkflowStore:
        """
        Create an in-memory SQLite store for testing.

        Returns:
            Connected in-memory store instance

        Example:
            store = await SqliteWorkflowStore.in_memory()
        """
        instance = cls(":memory:")
        await instance.connect()
        return instance

    def __repr__(self) -> str:
        if self.db_path == ":memory:":
            return "SqliteWorkflowStore(in-memory)"
        return f"SqliteWorkflowStore({self.db_path})"

    async def connect(self) -> None:
        """Open the database, switch it to WAL and create the schema. Idempotent."""
        if self._connection is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            timeout=5.0,
            isolation_level=None,
        )

        # ":memory:" answers "memory"; WAL is a file-only mode
        cursor = await self._connection.execute("PRAGMA journal_mode=WAL")
        result = await cursor.fetchone()
        await cursor.close()

        if result:
            mode = result[0].upper()
            if mode not in ("WAL", "MEMORY"):
                raise StorageError(f"SQLite refused WAL journal mode (got {result[0]})")

        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.execute("PRAGMA busy_timeout=5000")

        await self._create_schema()
        await self._connection.commit()

    async def _create_schema(self) -> None:
        """Create the workflows table and its indexes.

        Timestamps are INTEGER milliseconds since the epoch.
        """
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                status TEXT CHECK( status IN (
                    'pending','running','paused','completed','failed'
                ) ) NOT NULL,
                created_at INTEGER NOT NULL,
                completed_at INTEGER,
                data BLOB NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_workflows_status
            ON workflows(status)
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_workflows_completed_at
            ON workflows(completed_at)
        """)

    async def save(self, workflow: Workflow) -> None:
        self._check_connected()

        try:
            data = pickle.dumps(workflow)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise StorageError(f"Cannot serialize workflow {workflow.id}: {e}") from e

        async with self._lock:
            await self._connection.execute(
                """
                INSERT INTO workflows (id, project_id, status, created_at, completed_at, data)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    status = excluded.status,
                    completed_at = excluded.completed_at,
                    data = excluded.data
            """,
                (
                    workflow.id,
                    workflow.project_id,
                    workflow.status.value,
                    _to_millis(workflow.created_at),
                    _to_millis(workflow.completed_at),
                    data,
                ),
            )
            await self._connection.commit()

    async def get(self, workflow_id: str) -> Workflow | None:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT data FROM workflows WHERE id = ?", (workflow_id,)
            )
            row = await cursor.fetchone()
            await cursor.close()

        if row is None:
            return None
        return self._load(row[0])

    async def delete(self, workflow_id: str) -> bool:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "DELETE FROM workflows WHERE id = ?", (workflow_id,)
            )
            deleted = cursor.rowcount > 0
            await cursor.close()
            await self._connection.commit()

        return deleted

    async def list_workflows(self) -> list[Workflow]:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                "SELECT data FROM workflows ORDER BY created_at ASC, rowid ASC"
            )
            rows = await cursor.fetchall()
            await cursor.close()

        return [self._load(row[0]) for row in rows]

    async def purge_completed_before(self, cutoff: datetime) -> list[str]:
        self._check_connected()

        async with self._lock:
            cursor = await self._connection.execute(
                """
                DELETE FROM workflows
                WHERE completed_at IS NOT NULL AND completed_at < ?
                RETURNING id
            """,
                (_to_millis(cutoff),),
            )
            rows = await cursor.fetchall()
            await cursor.close()
            await self._connection.commit()

        return [row[0] for row in rows]

    async def reset(self) -> None:
        """Delete every stored workflow; the connection stays open."""
        self._check_connected()

        async with self._lock:
            await self._connection.execute("DELETE FROM workflows")
            await self._connection.commit()

    async def close(self) -> None:
        """Close the connection. Calling it again is a no-op."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _check_connected(self) -> None:
        if self._connection is None:
            raise StorageError("Not connected. Call connect() first.")

    @staticmethod
    def _load(data: bytes) -> Workflow:
        try:
            return pickle.loads(data)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
            raise StorageError(f"Cannot deserialize stored workflow: {e}") from e
