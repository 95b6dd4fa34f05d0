"""Datetime helpers shared by the freshness store and the renewal queue.

LanceDB stores naive timestamps. Everything above the storage layer works with
timezone-aware UTC datetimes; conversion happens only at the table boundary.
"""

from datetime import datetime, timezone

# Timestamp written to records that have never been renewed (or were reset).
NEVER_RENEWED = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Get current UTC datetime (timezone-aware).

    Returns:
        A timezone-aware datetime object representing the current time in UTC.
    """
    return datetime.now(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert any datetime to naive UTC for database writes.

    Args:
        dt: A datetime object (naive values are assumed to be UTC already).

    Returns:
        A naive datetime object representing the time in UTC.

    Example:
        >>> from datetime import datetime, timezone
        >>> to_naive_utc(datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)).tzinfo is None
        True
    """
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_aware_utc(dt: datetime) -> datetime:
    """Convert any datetime read from the database to timezone-aware UTC.

    Args:
        dt: A datetime object (naive values are assumed to be UTC).

    Returns:
        A timezone-aware datetime object in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def is_never_renewed(dt: datetime | None) -> bool:
    """Whether a stored renewal timestamp means "never renewed"."""
    return dt is None or to_aware_utc(dt) <= NEVER_RENEWED
