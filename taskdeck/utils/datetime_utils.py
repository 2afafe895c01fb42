"""DateTime utility functions for TaskDeck."""

from datetime import datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from taskdeck.logging_config import get_logger

logger = get_logger(__name__)


def resolve_timezone(timezone_name: Optional[str] = None) -> Optional[ZoneInfo]:
    """
    Resolve an IANA timezone name.

    Args:
        timezone_name: IANA timezone name (e.g., 'America/Denver') or None

    Returns:
        A ZoneInfo, or None for the server's local zone. ``astimezone(None)``
        looks up the local offset for each instant, so DST is honoured.
    """
    if timezone_name:
        try:
            return ZoneInfo(timezone_name)
        except ZoneInfoNotFoundError:
            logger.warning(f"Unknown timezone '{timezone_name}', using server local time")
    return None


def localize(naive: datetime, zone: Optional[ZoneInfo]) -> datetime:
    """Attach ``zone`` (None for server local) to a naive wall-clock time."""
    if zone is None:
        # Naive input to astimezone() is interpreted as server local time
        return naive.astimezone()
    return naive.replace(tzinfo=zone)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_local(dt: datetime, timezone_name: Optional[str] = None) -> datetime:
    """
    Convert a stored datetime to local time.

    Naive datetimes are treated as UTC, matching how the database layer
    stores them.

    Examples:
        >>> dt = datetime(2025, 11, 22, 14, 13, 45)
        >>> to_local(dt, 'America/Denver').hour
        7
    """
    return _as_utc(dt).astimezone(resolve_timezone(timezone_name))


def to_naive_utc(dt: datetime) -> datetime:
    """Normalize any datetime to naive UTC for storage and comparison."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def local_day_window(
    now: datetime,
    days: int = 1,
    timezone_name: Optional[str] = None
) -> Tuple[datetime, datetime]:
    """
    Compute the half-open window ``[start_of_today, start_of_today + days)``.

    The window is computed on the local calendar and returned as naive UTC
    bounds so it can be compared against stored due dates directly.

    Args:
        now: Current instant (naive UTC or aware)
        days: Window length in calendar days
        timezone_name: IANA timezone name; None means server local time

    Returns:
        Tuple of (start, end) as naive UTC datetimes
    """
    zone = resolve_timezone(timezone_name)
    today = _as_utc(now).astimezone(zone).date()
    # Each bound takes the UTC offset in force on its own date
    start = localize(datetime.combine(today, time.min), zone)
    end = localize(datetime.combine(today + timedelta(days=days), time.min), zone)
    return to_naive_utc(start), to_naive_utc(end)
