"""Per-worker execution metrics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pyconvoy.models.clock import utc_now


@dataclass
class WorkerMetrics:
    """Running totals for one worker kind.

    Updated by the executor after every attempt, successful or not.
    """

    execution_count: int = 0
    success_count: int = 0
    average_execution_ms: float = 0.0
    last_executed: datetime | None = None

    @property
    def success_rate(self) -> float:
        if self.execution_count == 0:
            return 0.0
        return self.success_count / self.execution_count

    def record(self, success: bool, elapsed_ms: float, when: datetime | None = None) -> None:
        """Fold one attempt into the running averages."""
        self.execution_count += 1
        if success:
            self.success_count += 1

        # Incremental mean avoids keeping every sample
        self.average_execution_ms += (elapsed_ms - self.average_execution_ms) / self.execution_count
        self.last_executed = when or utc_now()

    def copy(self) -> WorkerMetrics:
        return WorkerMetrics(
            execution_count=self.execution_count,
            success_count=self.success_count,
            average_execution_ms=self.average_execution_ms,
            last_executed=self.last_executed,
        )
