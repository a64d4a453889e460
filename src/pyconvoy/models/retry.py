"""
Retry policy configuration for task execution.

Design Pattern: Strategy Pattern
RetryPolicy encapsulates the pacing of retry attempts, allowing different
strategies without modifying the executor. A task re-attempts at most
``min(Task.max_retries, policy.max_retries)`` times; the policy also decides
how long to wait before each re-attempt.

Design Rationale:
- Safe default: immediate re-attempts inside the same batch pass
- Backoff available for workers that talk to rate-limited services
- Advanced control: custom RetryPolicy for full control
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, cast


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for task retry pacing.

    Examples:
        # Named policy: immediate re-attempts (default)
        policy = RetryPolicy.IMMEDIATE

        # Exponential backoff between re-attempts
        policy = RetryPolicy.BACKOFF

        # Custom policy: full control
        policy = RetryPolicy(
            max_retries=5,
            initial_delay_ms=200,
            max_delay_ms=5000,
            backoff_multiplier=2.0
        )
    """

    max_retries: int
    """Upper bound on re-attempts per task. A task's own max_retries can lower it.

    For example, max_retries = 3 means:
    - Attempt 1: first try
    - Attempts 2-4: re-attempts, each consuming one unit of retry_count
    """

    initial_delay_ms: int = 0
    """Delay before the first re-attempt in milliseconds.

    Default: 0 (re-attempt immediately)
    """

    max_delay_ms: int = 0
    """Maximum delay between re-attempts in milliseconds (caps backoff)."""

    backoff_multiplier: float = 1.0
    """Multiplier for exponential backoff.

    Each delay is calculated as:
    min(initial_delay * backoff_multiplier^(retry-1), max_delay)
    """

    # =========================================================================
    # Predefined Policies
    # =========================================================================

    if TYPE_CHECKING:
        NONE: RetryPolicy
        IMMEDIATE: RetryPolicy
        BACKOFF: RetryPolicy
    else:
        NONE = cast("RetryPolicy", None)
        IMMEDIATE = cast("RetryPolicy", None)
        BACKOFF = cast("RetryPolicy", None)

    @classmethod
    def with_max_retries(cls, max_retries: int) -> RetryPolicy:
        """
        Create an immediate-retry policy with a custom default budget.

        Args:
            max_retries: Default number of re-attempts per task

        Returns:
            RetryPolicy without delays

        Example:
            policy = RetryPolicy.with_max_retries(5)
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        return cls(max_retries=max_retries)

    def delay_for_retry(self, retry: int) -> float:
        """
        Calculate the delay before a re-attempt, in seconds.

        Args:
            retry: The retry number about to be attempted (1-indexed)

        Returns:
            Seconds to wait before the re-attempt (0.0 for immediate).

        Example:
            policy = RetryPolicy.BACKOFF
            policy.delay_for_retry(1)  # 0.1
            policy.delay_for_retry(2)  # 0.2
        """
        if retry < 1 or self.initial_delay_ms <= 0:
            return 0.0

        delay_ms = self.initial_delay_ms * self.backoff_multiplier ** (retry - 1)
        if self.max_delay_ms > 0:
            delay_ms = min(delay_ms, self.max_delay_ms)

        return delay_ms / 1000.0

    def __repr__(self) -> str:
        """Readable representation for debugging."""
        return (
            f"RetryPolicy(max_retries={self.max_retries}, "
            f"initial_delay_ms={self.initial_delay_ms}, "
            f"max_delay_ms={self.max_delay_ms}, "
            f"backoff_multiplier={self.backoff_multiplier})"
        )


# Initialize predefined policies after class definition
RetryPolicy.NONE = RetryPolicy(max_retries=0)

RetryPolicy.IMMEDIATE = RetryPolicy(max_retries=3)

RetryPolicy.BACKOFF = RetryPolicy(
    max_retries=3,
    initial_delay_ms=100,  # 100 milliseconds
    max_delay_ms=5000,  # 5 seconds
    backoff_multiplier=2.0,
)
