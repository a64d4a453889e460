"""Redis-based workflow store.

Lets several orchestrator processes share workflow state through one
Redis instance.

Data Structures:
- convoy:workflow:{id} (STRING): Pickled workflow aggregate
- convoy:workflows (ZSET): All workflow ids (score = created_at millis)
- convoy:completed (ZSET): Finished workflow ids (score = completed_at millis)

Design: Adapter Pattern
Implements WorkflowStore for Redis, adapting the key-value store to the
WorkflowStore interface.
"""

from __future__ import annotations

import pickle
from datetime import datetime

try:
    import redis.asyncio as redis
except ImportError:
    raise ImportError(
        "redis-py is required for RedisWorkflowStore. Install with: pip install redis"
    )

from pyconvoy.models import Workflow
from pyconvoy.storage.base import StorageError, WorkflowStore

_INDEX_KEY = "convoy:workflows"
_COMPLETED_KEY = "convoy:completed"


def _to_millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


class RedisWorkflowStore(WorkflowStore):
    """Redis workflow store using connection pooling.

    Usage:
        store = RedisWorkflowStore("redis://localhost:6379")
        await store.connect()

        await store.save(workflow)
        workflow = await store.get(workflow.id)
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", max_connections: int = 16):
        """Initialize Redis workflow store.

        Args:
            redis_url: Redis connection URL
            max_connections: Maximum pool size
        """
        self._redis_url = redis_url
        self._max_connections = max_connections
        self._redis: redis.Redis | None = None

    def __repr__(self) -> str:
        return f"RedisWorkflowStore({self._redis_url})"

    async def connect(self) -> None:
        """Establish Redis connection pool."""
        self._redis = redis.from_url(
            self._redis_url,
            decode_responses=False,  # Workflows are stored as pickled bytes
            max_connections=self._max_connections,
        )

    async def close(self) -> None:
        """Close Redis connection pool."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    def _check_connected(self) -> None:
        """Ensure connection established."""
        if self._redis is None:
            raise StorageError("Not connected. Call connect() first.")

    @staticmethod
    def _workflow_key(workflow_id: str) -> str:
        """Build Redis key for a workflow blob."""
        return f"convoy:workflow:{workflow_id}"

    async def save(self, workflow: Workflow) -> None:
        self._check_connected()

        try:
            data = pickle.dumps(workflow)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise StorageError(f"Cannot serialize workflow {workflow.id}: {e}") from e

        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.set(self._workflow_key(workflow.id), data)
            await pipe.zadd(_INDEX_KEY, {workflow.id: _to_millis(workflow.created_at)}, nx=True)
            if workflow.completed_at is not None:
                await pipe.zadd(_COMPLETED_KEY, {workflow.id: _to_millis(workflow.completed_at)})
            else:
                await pipe.zrem(_COMPLETED_KEY, workflow.id)
            await pipe.execute()

    async def get(self, workflow_id: str) -> Workflow | None:
        self._check_connected()

        data = await self._redis.get(self._workflow_key(workflow_id))
        if data is None:
            return None
        return self._load(data)

    async def delete(self, workflow_id: str) -> bool:
        self._check_connected()

        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.delete(self._workflow_key(workflow_id))
            await pipe.zrem(_INDEX_KEY, workflow_id)
            await pipe.zrem(_COMPLETED_KEY, workflow_id)
            deleted, _, _ = await pipe.execute()

        return deleted > 0

    async def list_workflows(self) -> list[Workflow]:
        self._check_connected()

        ids = await self._redis.zrange(_INDEX_KEY, 0, -1)
        if not ids:
            return []

        blobs = await self._redis.mget([self._workflow_key(i.decode()) for i in ids])
        return [self._load(blob) for blob in blobs if blob is not None]

    async def purge_completed_before(self, cutoff: datetime) -> list[str]:
        self._check_connected()

        # Exclusive upper bound: completed_at < cutoff
        raw_ids = await self._redis.zrangebyscore(_COMPLETED_KEY, "-inf", f"({_to_millis(cutoff)}")
        expired = [i.decode() for i in raw_ids]
        if not expired:
            return []

        async with self._redis.pipeline(transaction=True) as pipe:
            await pipe.delete(*[self._workflow_key(i) for i in expired])
            await pipe.zrem(_INDEX_KEY, *expired)
            await pipe.zrem(_COMPLETED_KEY, *expired)
            await pipe.execute()

        return expired

    async def reset(self) -> None:
        """Clear all data (for testing/demos)."""
        self._check_connected()

        ids = await self._redis.zrange(_INDEX_KEY, 0, -1)
        keys = [self._workflow_key(i.decode()) for i in ids]
        await self._redis.delete(_INDEX_KEY, _COMPLETED_KEY, *keys)

    @staticmethod
    def _load(data: bytes) -> Workflow:
        try:
            return pickle.loads(data)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
            raise StorageError(f"Cannot deserialize stored workflow: {e}") from e
