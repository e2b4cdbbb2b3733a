"""
Utility functions shared by the store and the core operations.
"""

from datetime import datetime, timezone
from typing import Tuple


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """
    Format a datetime as ISO-8601 UTC with microseconds and a Z suffix.

    Fixed width, so lexical order equals chronological order.
    """
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def from_iso(value: str) -> datetime:
    """Parse a timestamp written by ``to_iso`` (or any ISO-8601 UTC string)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def canonical_pair(a: str, b: str) -> Tuple[str, str]:
    """Order an unordered user pair so that it is stored exactly once."""
    return (a, b) if a < b else (b, a)
