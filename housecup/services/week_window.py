"""Week window calculations.

A week window is the 7-day challenge period derived from a household's
week start day. All functions are pure; only the ``current_*`` helpers look
at the wall clock, through the household timezone.
"""

from datetime import datetime

from pydantic import BaseModel

from housecup.core.config import Constants
from housecup.core.day_key import DayKey, add_days, day_of_week, days_in_range, today_key


class WeekWindow(BaseModel):
    """A 7-day challenge window."""

    start_day_key: DayKey
    end_day_key: DayKey
    day_keys: list[DayKey]

    def contains(self, day_key: DayKey) -> bool:
        """Check if a day falls inside this window."""
        return self.start_day_key <= day_key <= self.end_day_key


def _validate_week_start_day(week_start_day: int) -> None:
    if not 0 <= week_start_day <= 6:  # noqa: PLR2004
        msg = f"Invalid week start day: {week_start_day}. Must be 0 (Sunday) through 6 (Saturday)"
        raise ValueError(msg)


def week_window_containing(day_key: DayKey, week_start_day: int) -> WeekWindow:
    """Get the week window containing a specific day.

    Args:
        day_key: Any day in the week
        week_start_day: Day the week starts (0=Sunday ... 6=Saturday)

    Returns:
        The window whose start is the most recent ``week_start_day`` on or before ``day_key``

    Raises:
        ValueError: If week_start_day is outside 0-6 or day_key is malformed
    """
    _validate_week_start_day(week_start_day)

    days_back = (day_of_week(day_key) - week_start_day) % Constants.DAYS_PER_WEEK
    start = add_days(day_key, -days_back)
    end = add_days(start, Constants.DAYS_PER_WEEK - 1)

    return WeekWindow(start_day_key=start, end_day_key=end, day_keys=days_in_range(start, end))


def current_week_window(timezone: str, week_start_day: int, now: datetime | None = None) -> WeekWindow:
    """Get the window containing today in the household timezone."""
    return week_window_containing(today_key(timezone, now), week_start_day)


def next_week_window(timezone: str, week_start_day: int, now: datetime | None = None) -> WeekWindow:
    """Get the window after the current one."""
    current = current_week_window(timezone, week_start_day, now)
    return week_window_containing(add_days(current.end_day_key, 1), week_start_day)


def previous_week_window(timezone: str, week_start_day: int, now: datetime | None = None) -> WeekWindow:
    """Get the window before the current one."""
    current = current_week_window(timezone, week_start_day, now)
    return week_window_containing(add_days(current.start_day_key, -1), week_start_day)


def is_in_current_week(day_key: DayKey, timezone: str, week_start_day: int, now: datetime | None = None) -> bool:
    """Check if a day falls inside the current challenge week."""
    return current_week_window(timezone, week_start_day, now).contains(day_key)
