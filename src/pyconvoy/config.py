"""
Orchestrator configuration.

Defaults work out of the box; deployments override them either with the
``Orchestrator.with_*`` builders or through environment variables via
``OrchestratorConfig.from_env()``:

| Variable                      | Meaning                                     |
|-------------------------------|---------------------------------------------|
| CONVOY_MAX_CONCURRENT_TASKS   | Per-batch concurrency bound ("0" = none)    |
| CONVOY_CRITICAL_KINDS         | Comma-separated task kinds that abort a run |
| CONVOY_TASK_TIMEOUT           | Seconds per attempt (unset = no timeout)    |
| CONVOY_RETENTION_HOURS        | Age after which finished workflows go       |
| CONVOY_DISPATCH_POLICY        | first_match or exact_kind_first             |
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta

from pyconvoy.models import DispatchPolicy, RetryPolicy, TaskKind

DEFAULT_CRITICAL_KINDS = frozenset({TaskKind.ANALYSIS, TaskKind.PLANNING})


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Settings shared by the orchestrator and its executor.

    Example:
        # $ export CONVOY_MAX_CONCURRENT_TASKS=8
        config = OrchestratorConfig.from_env()
        orchestrator = Orchestrator(config=config)
    """

    max_concurrent_tasks: int | None = 3
    """Upper bound on tasks running at once within a batch; None = unbounded."""

    critical_kinds: frozenset[TaskKind] = DEFAULT_CRITICAL_KINDS
    """Task kinds whose failure aborts the remaining batches."""

    retry_policy: RetryPolicy = field(default_factory=lambda: RetryPolicy.IMMEDIATE)
    """Pacing between re-attempts. Each task's max_retries is its budget."""

    task_timeout: float | None = None
    """Seconds allowed per attempt; None waits indefinitely."""

    retention: timedelta = timedelta(hours=24)
    """How long finished workflows are kept before cleanup() purges them."""

    dispatch_policy: DispatchPolicy = DispatchPolicy.FIRST_MATCH

    interrupt_on_cancel: bool = True
    """Cancel in-flight attempts when their workflow is cancelled."""

    def __post_init__(self) -> None:
        if self.max_concurrent_tasks is not None and self.max_concurrent_tasks < 1:
            raise ValueError(
                f"max_concurrent_tasks must be >= 1 or None, got {self.max_concurrent_tasks}"
            )
        if self.task_timeout is not None and self.task_timeout <= 0:
            raise ValueError(f"task_timeout must be positive, got {self.task_timeout}")
        if self.retention < timedelta(0):
            raise ValueError(f"retention must not be negative, got {self.retention}")
        object.__setattr__(
            self, "critical_kinds", frozenset(TaskKind(k) for k in self.critical_kinds)
        )

    @classmethod
    def from_env(cls) -> OrchestratorConfig:
        """
        Build a config from CONVOY_* environment variables.

        Unset variables keep their defaults.

        Raises:
            ValueError: a variable is set to something unparseable
        """
        config = cls()

        max_concurrent = os.getenv("CONVOY_MAX_CONCURRENT_TASKS")
        if max_concurrent is not None:
            value = int(max_concurrent)
            config = replace(config, max_concurrent_tasks=value if value > 0 else None)

        critical = os.getenv("CONVOY_CRITICAL_KINDS")
        if critical is not None:
            kinds = frozenset(TaskKind(k.strip()) for k in critical.split(",") if k.strip())
            config = replace(config, critical_kinds=kinds)

        timeout = os.getenv("CONVOY_TASK_TIMEOUT")
        if timeout:
            config = replace(config, task_timeout=float(timeout))

        retention_hours = os.getenv("CONVOY_RETENTION_HOURS")
        if retention_hours is not None:
            config = replace(config, retention=timedelta(hours=float(retention_hours)))

        policy = os.getenv("CONVOY_DISPATCH_POLICY")
        if policy is not None:
            config = replace(config, dispatch_policy=DispatchPolicy(policy.strip().lower()))

        return config
