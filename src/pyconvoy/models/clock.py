"""Timestamp helper shared by the models and the executor."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Current UTC timestamp."""
    return datetime.now(tz=UTC)
