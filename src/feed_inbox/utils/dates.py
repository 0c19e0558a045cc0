"""Timestamp helpers: every stored or emitted timestamp is ISO 8601 UTC with a trailing Z."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time in UTC, truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    """
    Render a datetime as ISO 8601 UTC with a trailing ``Z``.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utc_now_iso() -> str:
    return format_timestamp(utc_now())

