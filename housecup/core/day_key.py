"""DayKey utilities.

Every per-day join uses a day key: a ``yyyy-MM-dd`` string in the household's
timezone. Fixed-width encoding keeps string order equal to calendar order.

Arithmetic works on plain ``date`` values, so daylight-saving transitions never
shift a key. The timezone is only consulted when converting wall-clock "now"
into a key.
"""

import re
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo


DayKey = str

_DAY_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DAY_LABELS = ["S", "M", "T", "W", "T", "F", "S"]
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
SHORT_DAY_NAMES = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def format_day_key(moment: datetime, timezone: str) -> DayKey:
    """Format an instant as a day key in the given IANA timezone.

    Naive datetimes are treated as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(ZoneInfo(timezone)).date().isoformat()


def today_key(timezone: str, now: datetime | None = None) -> DayKey:
    """Get the current day key in a specific timezone."""
    return format_day_key(now or datetime.now(UTC), timezone)


def is_valid_day_key(value: str) -> bool:
    """Return True if value is a well-formed, real calendar day key."""
    if not _DAY_KEY_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_day_key(day_key: DayKey) -> date:
    """Parse a day key into a date.

    Raises:
        ValueError: If the key is not a valid yyyy-MM-dd date
    """
    if not is_valid_day_key(day_key):
        msg = f"Invalid day key: {day_key!r}. Expected yyyy-MM-dd"
        raise ValueError(msg)
    return date.fromisoformat(day_key)


def day_of_week(day_key: DayKey) -> int:
    """Get the day of week for a day key (0=Sunday, 6=Saturday)."""
    # date.weekday() is 0=Monday
    return (parse_day_key(day_key).weekday() + 1) % 7


def add_days(day_key: DayKey, days: int) -> DayKey:
    """Add (or subtract) days from a day key."""
    return (parse_day_key(day_key) + timedelta(days=days)).isoformat()


def days_between(start_day_key: DayKey, end_day_key: DayKey) -> int:
    """Get the signed difference in days between two day keys."""
    return (parse_day_key(end_day_key) - parse_day_key(start_day_key)).days


def is_in_range(day_key: DayKey, start_day_key: DayKey, end_day_key: DayKey) -> bool:
    """Check if a day key falls within a range (inclusive)."""
    return start_day_key <= day_key <= end_day_key


def days_in_range(start_day_key: DayKey, end_day_key: DayKey) -> list[DayKey]:
    """Generate the day keys for a range (inclusive, ascending).

    Returns an empty list when start is after end.
    """
    start = parse_day_key(start_day_key)
    count = days_between(start_day_key, end_day_key) + 1
    return [(start + timedelta(days=offset)).isoformat() for offset in range(max(count, 0))]


def day_label(day_key: DayKey) -> str:
    """Single-letter weekday label (S, M, T, W, T, F, S)."""
    return DAY_LABELS[day_of_week(day_key)]


def day_name(day_key: DayKey) -> str:
    """Full weekday name, e.g. "Monday"."""
    return DAY_NAMES[day_of_week(day_key)]


def format_range(start_day_key: DayKey, end_day_key: DayKey) -> str:
    """Format a day key range for display (e.g. "Jan 18 - Jan 24")."""
    start = parse_day_key(start_day_key)
    end = parse_day_key(end_day_key)
    return f"{start.strftime('%b')} {start.day} - {end.strftime('%b')} {end.day}"
