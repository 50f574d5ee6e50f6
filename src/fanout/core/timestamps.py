"""
UTC timestamp utilities (stdlib-only).

Every persisted timestamp goes through :func:`to_db_timestamp` so that SQL
string comparisons on ``*_at`` columns order the same way the datetimes do.

Tags:
    timestamps, utc, datetime, fanout-core, stdlib-only
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]

_DB_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return dt.isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to a timezone-aware datetime."""
    if not s:
        return None
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def to_db_timestamp(dt: datetime) -> str:
    """Fixed-width UTC representation used in every ``*_at`` column."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime(_DB_FORMAT)
