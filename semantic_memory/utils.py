"""Shared utility functions for semantic-memory."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC ISO string.

    Fixed width keeps stored timestamps lexicographically sortable.
    """
    return ensure_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def escape_filter_value(value: str) -> str:
    """Escape single quotes in filter values to prevent injection."""
    return value.replace("'", "''")


def preview(text: str, width: int) -> str:
    """Single-line preview of text, truncated to width characters."""
    flat = text[:width].replace("\n", " ")
    return f"{flat}..." if len(text) > width else flat
