"""Worker registry and dispatch.

Maps worker kinds to worker instances and picks the worker for a task.
Registration may happen from another thread while workflows dispatch, so
every access goes through a re-entrant lock.
"""

import logging
import threading

from pyconvoy.errors import DispatchError
from pyconvoy.executor.worker import Worker
from pyconvoy.models import DispatchPolicy, Task, WorkerMetrics

logger = logging.getLogger(__name__)


class WorkerRegistry:
    """Registry of workers keyed by ``worker.kind``.

    Registering a kind that is already present replaces the worker but keeps
    its original slot, so FIRST_MATCH order stays stable across upgrades.

    Example:
        ```python
        registry = WorkerRegistry()
        registry.register(FunctionWorker("analyzer", "analysis", analyze))

        worker = registry.require(task)
        ```
    """

    def __init__(self, policy: DispatchPolicy = DispatchPolicy.FIRST_MATCH):
        self._policy = policy
        self._workers: dict[str, Worker] = {}
        self._metrics: dict[str, WorkerMetrics] = {}
        self._lock = threading.RLock()

    @property
    def policy(self) -> DispatchPolicy:
        return self._policy

    def set_policy(self, policy: DispatchPolicy) -> None:
        with self._lock:
            self._policy = policy

    def register(self, worker: Worker) -> None:
        """Register a worker under its kind."""
        with self._lock:
            replaced = worker.kind in self._workers
            self._workers[worker.kind] = worker
            self._metrics.setdefault(worker.kind, WorkerMetrics())

        if replaced:
            logger.info(f"Replaced worker for kind {worker.kind}: {worker.name}")
        else:
            logger.info(f"Registered worker {worker.name} ({worker.kind})")

    def unregister(self, kind: str) -> bool:
        """Remove the worker registered under ``kind``.

        Returns:
            True if a worker was removed, False if none was registered
        """
        with self._lock:
            worker = self._workers.pop(kind, None)
            self._metrics.pop(kind, None)

        if worker is None:
            return False

        logger.info(f"Unregistered worker {worker.name} ({kind})")
        return True

    def dispatch(self, task: Task) -> Worker | None:
        """Select the worker for a task, or None if nobody can run it."""
        with self._lock:
            workers = list(self._workers.values())
            exact = self._workers.get(task.worker_kind)

        first_capable = next((w for w in workers if w.can_handle(task)), None)

        if self._policy is DispatchPolicy.EXACT_KIND_FIRST:
            if exact is not None and exact.can_handle(task):
                return exact
            return first_capable

        if first_capable is not None:
            return first_capable
        return exact

    def require(self, task: Task) -> Worker:
        """Like dispatch(), but raises DispatchError when no worker fits."""
        worker = self.dispatch(task)
        if worker is None:
            raise DispatchError(
                f"No suitable worker found for task {task.id} "
                f"(kind={task.kind}, worker_kind={task.worker_kind or '-'})",
                task_id=task.id,
            )
        return worker

    def record(self, kind: str, success: bool, elapsed_ms: float) -> None:
        """Fold one attempt by the worker of ``kind`` into its metrics."""
        with self._lock:
            metrics = self._metrics.get(kind)
            if metrics is not None:
                metrics.record(success, elapsed_ms)

    def metrics(self) -> dict[str, WorkerMetrics]:
        """Copies of the current metrics, keyed by worker kind."""
        with self._lock:
            return {kind: m.copy() for kind, m in self._metrics.items()}

    def workers(self) -> list[Worker]:
        with self._lock:
            return list(self._workers.values())

    def kinds(self) -> list[str]:
        with self._lock:
            return list(self._workers)

    def get(self, kind: str) -> Worker | None:
        with self._lock:
            return self._workers.get(kind)

    def __contains__(self, kind: object) -> bool:
        with self._lock:
            return kind in self._workers

    def __len__(self) -> int:
        """Returns the number of registered workers."""
        with self._lock:
            return len(self._workers)

    def is_empty(self) -> bool:
        """Returns True if no workers are registered."""
        return len(self) == 0
