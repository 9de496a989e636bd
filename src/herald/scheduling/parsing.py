"""Time expression parsing.

Relative durations ("30s", "5m", "2h", "3d", "1w", "1h30m"), absolute
datetimes ("2026-01-20 10:00", "10:00", "tomorrow 10:00") and recurrence
rules ("daily", "every 2 weeks", "1m"). All functions are pure and return
None for input they do not recognize.
"""

import re
from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

from herald.scheduling.types import Frequency, Recurrence

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}

_UNIT_PATTERN = (
    r"s|secs?|seconds?"
    r"|m|mins?|minutes?"
    r"|h|hrs?|hours?"
    r"|d|days?"
    r"|w|wks?|weeks?"
)

_SIMPLE_DURATION = re.compile(rf"^(\d+)\s*({_UNIT_PATTERN})$")
_COMPOUND_DURATION = re.compile(r"^(\d+)\s*h(?:rs?|ours?)?\s*(\d+)\s*m(?:ins?|inutes?)?$")

_FULL_DATETIME = re.compile(r"^(\d{4}-\d{2}-\d{2})[\sT](\d{1,2}):(\d{2})$")
_TIME_ONLY = re.compile(r"^(\d{1,2}):(\d{2})$")
_TOMORROW = re.compile(r"^tomorrow\s+(\d{1,2}):(\d{2})$")

_FREQUENCY_WORDS = {
    "daily": Frequency.DAILY,
    "day": Frequency.DAILY,
    "days": Frequency.DAILY,
    "weekly": Frequency.WEEKLY,
    "week": Frequency.WEEKLY,
    "weeks": Frequency.WEEKLY,
    "monthly": Frequency.MONTHLY,
    "month": Frequency.MONTHLY,
    "months": Frequency.MONTHLY,
    "yearly": Frequency.YEARLY,
    "annually": Frequency.YEARLY,
    "year": Frequency.YEARLY,
    "years": Frequency.YEARLY,
}
_EVERY_N = re.compile(r"^every\s+(\d+)\s+([a-z]+)$")
_EVERY_UNIT = re.compile(r"^every\s+([a-z]+)$")
_KEYWORD_N = re.compile(r"^([a-z]+)\s+(\d+)$")


def parse_duration(text: str | None) -> timedelta | None:
    """Parse a positive duration like "30s", "5m", "2h", "3d", "1w" or "1h30m"."""
    if not text or not isinstance(text, str):
        return None

    trimmed = text.strip().lower()

    if match := _SIMPLE_DURATION.match(trimmed):
        amount, unit = match.groups()
        seconds = int(amount) * _UNIT_SECONDS[unit[0]]
    elif match := _COMPOUND_DURATION.match(trimmed):
        hours, minutes = match.groups()
        seconds = int(hours) * 3600 + int(minutes) * 60
    else:
        return None

    if seconds <= 0:
        return None
    try:
        return timedelta(seconds=seconds)
    except OverflowError:
        return None


def parse_relative_time(text: str | None, now: datetime | None = None) -> datetime | None:
    """Parse a relative duration into an absolute UTC instant (now + duration).

    Returns None for non-numeric, zero, or unrecognized input.
    """
    duration = parse_duration(text)
    if duration is None:
        return None
    base = now or datetime.now(UTC)
    try:
        return base + duration
    except OverflowError:
        return None


def parse_datetime(
    text: str | None,
    timezone: str = "UTC",
    now: datetime | None = None,
) -> datetime | None:
    """Parse an absolute date/time in the given IANA timezone.

    Accepted forms:
    - "2026-01-20 10:00" or "2026-01-20T10:00"
    - "10:00" (today, or tomorrow if that time has passed)
    - "tomorrow 10:00"

    Returns:
        The instant in UTC, or None if the input is not recognized.
    """
    if not text or not isinstance(text, str):
        return None

    tz = ZoneInfo(timezone)
    local_now = (now or datetime.now(UTC)).astimezone(tz)
    trimmed = text.strip().lower()

    try:
        if match := _FULL_DATETIME.match(trimmed):
            day, hour, minute = match.groups()
            local = datetime.fromisoformat(day).replace(
                hour=int(hour), minute=int(minute), tzinfo=tz
            )
        elif match := _TIME_ONLY.match(trimmed):
            hour, minute = match.groups()
            local = local_now.replace(
                hour=int(hour), minute=int(minute), second=0, microsecond=0
            )
            if local <= local_now:
                local += timedelta(days=1)
        elif match := _TOMORROW.match(trimmed):
            hour, minute = match.groups()
            local = (local_now + timedelta(days=1)).replace(
                hour=int(hour), minute=int(minute), second=0, microsecond=0
            )
        else:
            return None
    except ValueError:
        return None

    return local.astimezone(UTC)


def parse_time_expression(
    text: str | None,
    timezone: str = "UTC",
    now: datetime | None = None,
) -> datetime | None:
    """Parse a relative duration first, then an absolute date/time."""
    return parse_relative_time(text, now=now) or parse_datetime(
        text, timezone=timezone, now=now
    )


def parse_recurrence(text: str | None) -> Recurrence | None:
    """Parse a recurrence rule.

    Accepted forms: "daily", "weekly", "monthly", "yearly", "every week",
    "every 2 weeks", "weekly 2", and the compact "1d", "every2w", "1m", "1y".
    """
    if not text or not isinstance(text, str):
        return None

    trimmed = " ".join(text.strip().lower().split())

    if compact := Recurrence.from_compact(trimmed):
        return compact

    if trimmed in _FREQUENCY_WORDS:
        return Recurrence(frequency=_FREQUENCY_WORDS[trimmed])

    interval = 1
    word: str | None = None
    if match := _EVERY_N.match(trimmed):
        interval, word = int(match.group(1)), match.group(2)
    elif match := _EVERY_UNIT.match(trimmed):
        word = match.group(1)
    elif match := _KEYWORD_N.match(trimmed):
        word, interval = match.group(1), int(match.group(2))

    if word not in _FREQUENCY_WORDS or interval < 1:
        return None
    return Recurrence(frequency=_FREQUENCY_WORDS[word], interval=interval)


def format_relative_time(delta: timedelta) -> str:
    """Format a duration for display: "2d 3h", "1h 30m", "5m 10s", "45s"."""
    seconds = max(0, int(delta.total_seconds()))
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days:
        return f"{days}d {hours}h" if hours else f"{days}d"
    if hours:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    if minutes:
        return f"{minutes}m {seconds}s" if seconds else f"{minutes}m"
    return f"{seconds}s"


_FREQUENCY_NOUNS = {
    Frequency.DAILY: "day",
    Frequency.WEEKLY: "week",
    Frequency.MONTHLY: "month",
    Frequency.YEARLY: "year",
}


def format_recurrence(recurrence: Recurrence | None) -> str:
    """Format a recurrence for display: "One-time", "Every day", "Every 2 weeks"."""
    if recurrence is None:
        return "One-time"
    noun = _FREQUENCY_NOUNS[recurrence.frequency]
    if recurrence.interval == 1:
        return f"Every {noun}"
    return f"Every {recurrence.interval} {noun}s"
