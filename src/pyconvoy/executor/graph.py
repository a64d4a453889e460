"""
Task graph batching.

Turns the dependency lists of a workflow's tasks into an ordered sequence
of batches. Every task in a batch has all of its dependencies in earlier
batches, and batches are maximal: every task whose dependencies are
satisfied at a given step joins the same batch.

**How It Works** (Kahn layering):
1. Count, for each task, how many dependencies it declares (in-degree)
2. Collect every unvisited task with in-degree 0 into the next batch
3. Mark them visited and decrement the in-degree of their dependents
4. Repeat until every task is visited

**Cycles**: when no task is ready but some remain unvisited, the
remaining tasks form one final batch, a warning names them, and batching
stops. The executor attempts that batch with dependencies unmet instead
of crashing.

**Example**:
```python
graph = TaskGraph({"a": [], "b": ["a"], "c": ["a"]})
graph.batches().batches  # [["a"], ["b", "c"]]
```
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from pyconvoy.errors import CircularDependencyWarning
from pyconvoy.models import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Schedule:
    """
    Ordered batches produced by ``TaskGraph.batches()``.

    **Attributes**:
        batches: Task ids per batch, in execution order
        cyclic: Ids placed in the degraded cycle batch (empty when acyclic)
    """

    batches: list[list[str]] = field(default_factory=list)
    cyclic: frozenset[str] = frozenset()

    @property
    def has_cycle(self) -> bool:
        return bool(self.cyclic)

    def __iter__(self):
        return iter(self.batches)

    def __len__(self) -> int:
        return len(self.batches)


@dataclass(frozen=True)
class GraphSummary:
    """
    Summary information about a task graph.

    **Attributes**:
        total_tasks: Total number of tasks in the graph
        root_count: Number of tasks without dependencies
        leaf_count: Number of tasks nothing depends on
        max_depth: Index of the deepest batch
        roots: Root task ids
        leaves: Leaf task ids
    """

    total_tasks: int
    root_count: int
    leaf_count: int
    max_depth: int
    roots: list[str]
    leaves: list[str]


class TaskGraph:
    """
    Dependency graph over task ids.

    Insertion order of the mapping is preserved in every batch, so two
    runs over the same workflow produce identical schedules.

    Dependencies naming ids outside the graph are ignored here; plan
    validation rejects them before a workflow ever reaches the scheduler.
    """

    def __init__(self, dependencies: Mapping[str, Sequence[str]]):
        self._dependencies: dict[str, list[str]] = {
            node: [dep for dep in deps if dep in dependencies]
            for node, deps in dependencies.items()
        }

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> TaskGraph:
        return cls({task.id: list(task.dependencies) for task in tasks})

    def __len__(self) -> int:
        return len(self._dependencies)

    def dependencies_of(self, node: str) -> list[str]:
        return list(self._dependencies[node])

    def batches(self) -> Schedule:
        """
        Computes the batch schedule.

        **Returns**:
            Schedule with maximal batches; ``cyclic`` lists the tasks that
            were placed in the best-effort batch after a cycle was found.
        """
        in_degree: dict[str, int] = {node: 0 for node in self._dependencies}
        dependents: dict[str, list[str]] = {node: [] for node in self._dependencies}

        for node, deps in self._dependencies.items():
            for dep in deps:
                in_degree[node] += 1
                dependents[dep].append(node)

        batches: list[list[str]] = []
        visited: set[str] = set()

        while len(visited) < len(self._dependencies):
            current = [
                node for node, degree in in_degree.items() if degree == 0 and node not in visited
            ]

            if not current:
                remaining = [node for node in self._dependencies if node not in visited]
                logger.warning(f"Circular dependency detected among tasks: {', '.join(remaining)}")
                warnings.warn(
                    f"Circular dependency detected among tasks: {', '.join(remaining)}",
                    CircularDependencyWarning,
                    stacklevel=2,
                )
                batches.append(remaining)
                return Schedule(batches=batches, cyclic=frozenset(remaining))

            batches.append(current)

            for node in current:
                visited.add(node)
                for child in dependents[node]:
                    in_degree[child] -= 1

        return Schedule(batches=batches)

    def summary(self) -> GraphSummary:
        """
        Returns a summary of the graph structure.

        **Returns**:
            GraphSummary with graph statistics
        """
        roots = [node for node, deps in self._dependencies.items() if not deps]

        depended_on: set[str] = set()
        for deps in self._dependencies.values():
            depended_on.update(deps)
        leaves = [node for node in self._dependencies if node not in depended_on]

        schedule = self.batches()
        max_depth = max(len(schedule) - 1, 0)

        return GraphSummary(
            total_tasks=len(self._dependencies),
            root_count=len(roots),
            leaf_count=len(leaves),
            max_depth=max_depth,
            roots=roots,
            leaves=leaves,
        )

    def level_graph(self) -> str:
        """
        Returns a batch-by-batch view showing which tasks run concurrently.

        **Example output**:
        ```
        Task Batches (4 tasks):

        Batch 0: [analyze]
                 ↓
        Batch 1: [convert_api] [convert_ui] (2 concurrent tasks)
                 ↓
        Batch 2: [validate]
        ```
        """
        schedule = self.batches()
        output = f"Task Batches ({len(self._dependencies)} tasks):\n\n"

        for index, batch in enumerate(schedule.batches):
            concurrent_note = f" ({len(batch)} concurrent tasks)" if len(batch) > 1 else ""
            cycle_note = " (circular)" if schedule.cyclic and index == len(schedule) - 1 else ""

            output += f"Batch {index}: [{'] ['.join(batch)}]{concurrent_note}{cycle_note}\n"

            if index < len(schedule) - 1:
                output += "         ↓\n"

        return output


__all__ = ["TaskGraph", "Schedule", "GraphSummary"]
