"""Dispatch policy enumeration."""

from enum import Enum


class DispatchPolicy(Enum):
    """How a worker is chosen when several could handle a task."""

    FIRST_MATCH = "first_match"
    """First registered worker whose can_handle() accepts the task, then exact kind lookup."""

    EXACT_KIND_FIRST = "exact_kind_first"
    """Worker registered under the task's worker_kind first, then the first capability match."""

    def __str__(self) -> str:
        return self.value
