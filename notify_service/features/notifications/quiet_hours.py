"""Quiet-window (do-not-disturb) evaluation.

A window is the pair ``quiet_start``/``quiet_end`` in ``HH:MM`` local
time. ``22:00``/``08:00`` spans midnight and is quiet from 22:00 until
08:00 the next morning. Malformed windows and unknown zones are treated
as "never quiet" and logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from typing import TYPE_CHECKING

import pytz

from notify_service.features.notifications.localtime import get_timezone, localize

if TYPE_CHECKING:
    from notify_service.features.notifications.schemas import UserNotificationProfile

logger = logging.getLogger(__name__)


def parse_hhmm(value: str) -> int:
    """Convert ``HH:MM`` into minutes since midnight.

    Raises:
        ValueError: If the value is not a valid 24-hour time.
    """
    hours, sep, minutes = value.strip().partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit() or len(minutes) != 2:
        raise ValueError(f"Invalid HH:MM time: {value!r}")
    h, m = int(hours), int(minutes)
    if not (0 <= h < 24 and 0 <= m < 60):
        raise ValueError(f"Invalid HH:MM time: {value!r}")
    return h * 60 + m


@dataclass(slots=True, frozen=True)
class QuietWindow:
    """Parsed quiet window for one user."""

    start: int
    end: int
    tz: pytz.BaseTzInfo

    def contains(self, minutes: int) -> bool:
        if self.start <= self.end:
            return self.start <= minutes < self.end
        return minutes >= self.start or minutes < self.end


class QuietWindowEvaluator:
    """Decides whether an instant falls inside a user's quiet window."""

    def __init__(self, default_timezone: str = "UTC") -> None:
        self.default_timezone = default_timezone

    def window_for(self, profile: UserNotificationProfile) -> QuietWindow | None:
        """Parse the profile's window, or None when the user has none."""
        if profile.quiet_start is None or profile.quiet_end is None:
            return None
        try:
            return QuietWindow(
                start=parse_hhmm(profile.quiet_start),
                end=parse_hhmm(profile.quiet_end),
                tz=get_timezone(profile.timezone, self.default_timezone),
            )
        except (ValueError, pytz.UnknownTimeZoneError) as e:
            logger.warning(
                "Ignoring malformed quiet window",
                extra={"user_id": profile.user_id, "error": str(e)},
            )
            return None

    def is_quiet(self, profile: UserNotificationProfile, now: datetime) -> bool:
        window = self.window_for(profile)
        if window is None:
            return False
        local = now.astimezone(window.tz)
        return window.contains(local.hour * 60 + local.minute)

    def next_eligible(self, profile: UserNotificationProfile, now: datetime) -> datetime:
        """Next occurrence of the window end, as a UTC instant.

        Users without a (valid) window are eligible immediately.
        """
        window = self.window_for(profile)
        if window is None:
            return now
        local = now.astimezone(window.tz)
        end = time(window.end // 60, window.end % 60)
        candidate = localize(window.tz, local.date(), end)
        if candidate <= now:
            candidate = localize(window.tz, local.date() + timedelta(days=1), end)
        return candidate.astimezone(UTC)

    def schedule_time(
        self,
        profile: UserNotificationProfile,
        now: datetime,
        preferred: datetime | None = None,
    ) -> datetime:
        """Earliest instant at or after ``preferred`` that respects the window.

        Only ``now`` is checked against the window; a ``preferred`` instant
        is returned as given when the user is not currently quiet.
        """
        if not self.is_quiet(profile, now):
            return preferred or now
        return self.next_eligible(profile, now)
