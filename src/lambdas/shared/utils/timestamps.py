"""Timestamp parsing and formatting for identity metadata.

Identity metadata stores timestamps as ISO-8601 UTC strings with
millisecond precision and a trailing ``Z`` (e.g. ``2024-03-01T00:00:00.000Z``).
Older records may carry epoch milliseconds instead.
"""

from datetime import UTC, datetime
from typing import Any


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Args:
        value: ISO-8601 string, epoch milliseconds, datetime, or None.

    Returns:
        Aware datetime, or None for empty, zero, or unparseable input.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)

    if isinstance(value, int | float):
        if not value or value != value:  # zero or NaN
            return None
        try:
            return datetime.fromtimestamp(value / 1000, UTC)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)

    return None


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime the way identity metadata stores it.

    Example:
        >>> format_timestamp(datetime(2024, 3, 1, tzinfo=UTC))
        '2024-03-01T00:00:00.000Z'
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (
        value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    )
