"""Local-day arithmetic for users in arbitrary time zones."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta

import pytz


def get_timezone(name: str | None, default: str = "UTC") -> pytz.BaseTzInfo:
    """Resolve an IANA zone name, falling back to ``default`` when unset.

    Raises:
        pytz.UnknownTimeZoneError: If the name is not a known zone.
    """
    return pytz.timezone(name or default)


def localize(tz: pytz.BaseTzInfo, day: date, at: time) -> datetime:
    """Attach ``tz`` to a local wall-clock time, resolving DST gaps forward."""
    return tz.normalize(tz.localize(datetime.combine(day, at), is_dst=False))


def local_day_bounds(now: datetime, tz: pytz.BaseTzInfo) -> tuple[datetime, datetime]:
    """UTC instants of the start of ``now``'s local day and of the next one."""
    today = now.astimezone(tz).date()
    start = localize(tz, today, time.min)
    end = localize(tz, today + timedelta(days=1), time.min)
    return start.astimezone(UTC), end.astimezone(UTC)


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant in UTC."""
    return datetime.now(UTC)
