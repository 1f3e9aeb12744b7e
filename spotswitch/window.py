from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo

from .errors import ConfigurationError

_HOUR = timedelta(hours=1)
# One day plus a spare step so DST transitions still hit every hour-of-day
_MAX_STEPS = 25


def _next_hour_boundary(at: datetime) -> datetime:
    utc = at.astimezone(timezone.utc)
    return utc.replace(minute=0, second=0, microsecond=0) + _HOUR


def find_hour(after: datetime, hour: int, tz: tzinfo) -> datetime:
    """Return the first hour boundary strictly after ``after`` whose local hour is ``hour``."""
    if not 0 <= hour <= 23:
        raise ConfigurationError(f"hour of day must be within 0..23, got {hour}")
    candidate = _next_hour_boundary(after)
    for _ in range(_MAX_STEPS):
        if candidate.astimezone(tz).hour == hour:
            return candidate
        candidate += _HOUR
    raise ConfigurationError(
        f"no hour boundary with local hour {hour} within {_MAX_STEPS}h after {after.isoformat()}"
    )


def resolve_window(
    now: datetime, start_hour: int, end_hour: int, tz: tzinfo
) -> tuple[datetime, datetime]:
    """Map ``now`` and the configured hours onto absolute query bounds (UTC).

    The end is searched from the start, so ``end_hour < start_hour`` spans
    midnight and ``start_hour == end_hour`` yields one full day.
    """
    if now.tzinfo is None:
        raise ConfigurationError("now must be timezone-aware")
    query_start = find_hour(now, start_hour, tz)
    query_end = find_hour(query_start, end_hour, tz)
    return query_start, query_end
