"""
Free-text time label resolution.

Turns labels such as "Wednesday afternoon" or "Tue 11am" into a weekday and
a wall-clock time. Resolution is pure: no clock is read here, so the same
label always yields the same result. Turning the result into a concrete date
is the job of ``occurrence.next_occurrence``.

Precedence for the time of day (first rule that applies wins):

1. "afternoon" anywhere in the label -> 3:00 PM
2. "morning" anywhere in the label -> 10:00 AM
3. a clock time right after the weekday ("Tue 11am", "Friday at 2:30 pm")
4. nothing -> ``None``; callers fall back to ``DEFAULT_TIME_OF_DAY``

A day-part word therefore overrides an explicit clock time ("Monday 9am
afternoon" resolves to 3:00 PM).
"""

import re
from dataclasses import dataclass
from enum import IntEnum


class LabelResolutionError(ValueError):
    """Raised when a visit's requested time cannot be turned into an instant."""

    def __init__(self, message: str, label: str | None = None):
        super().__init__(message)
        self.label = label


class Weekday(IntEnum):
    """Days of the week, numbered like ``datetime.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True, slots=True)
class ClockTime:
    """
    A wall-clock time as written in a label.

    ``period`` is "AM" or "PM". When it is ``None`` the label carried no
    suffix and ``hour`` is read on the 24-hour clock ("Mon 15:30").
    """

    hour: int
    minute: int = 0
    period: str | None = None

    def __post_init__(self):
        if self.period is not None:
            if self.period not in ("AM", "PM"):
                raise ValueError(f"period must be AM or PM, got {self.period!r}")
            if not 1 <= self.hour <= 12:
                raise ValueError(f"hour must be 1-12 with an AM/PM suffix, got {self.hour}")
        elif not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be 0-23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute must be 0-59, got {self.minute}")

    def __str__(self) -> str:
        text = f"{self.hour}:{self.minute:02d}"
        return f"{text} {self.period}" if self.period else text

    def to_24_hour(self) -> tuple[int, int]:
        """Return (hour, minute) on the 24-hour clock."""
        hour = self.hour
        if self.period == "AM" and hour == 12:
            hour = 0
        elif self.period == "PM" and hour != 12:
            hour += 12
        return hour, self.minute

    @classmethod
    def parse(cls, text: str) -> "ClockTime":
        """Parse the canonical "H:MM AM/PM" (or "H:MM") form."""
        match = _CANONICAL_TIME.fullmatch(text.strip())
        if not match:
            raise ValueError(f"Not a clock time: {text!r}")
        hour, minute, period = match.groups()
        return cls(int(hour), int(minute), period.upper() if period else None)


@dataclass(frozen=True, slots=True)
class ParsedLabel:
    weekday: Weekday | None
    time_of_day: ClockTime | None


AFTERNOON_TIME = ClockTime(3, 0, "PM")
MORNING_TIME = ClockTime(10, 0, "AM")
DEFAULT_TIME_OF_DAY = ClockTime(10, 0, "AM")

_WEEKDAY_TOKEN = re.compile(
    r"\b(sunday|monday|tuesday|wednesday|thursday|friday|saturday"
    r"|sun|mon|tues|tue|wed|thurs|thur|thu|fri|sat)\b",
    re.IGNORECASE,
)
_WEEKDAY_BY_PREFIX = {day.name[:3].lower(): day for day in Weekday}

# Clock time right after the weekday token; punctuation and "at" / "@" may sit in between
_CLOCK_AFTER_WEEKDAY = re.compile(
    r"[\s,;:\-–(]*(?:at\s+|@\s*)?(\d{1,2})(?::(\d{2}))?\s*(am|pm)?(?![\w:])",
    re.IGNORECASE,
)
_CANONICAL_TIME = re.compile(r"(\d{1,2}):(\d{2})(?:\s+(AM|PM))?", re.IGNORECASE)


def _clock_after(text: str) -> ClockTime | None:
    match = _CLOCK_AFTER_WEEKDAY.match(text)
    if not match:
        return None

    hour, minute, period = match.groups()
    try:
        return ClockTime(int(hour), int(minute or 0), period.upper() if period else None)
    except ValueError:
        # "Mon 45" or "Tue 13pm" are not clock times; treat as absent
        return None


def resolve_label(label: str | None) -> ParsedLabel:
    """
    Extract the weekday and time of day from a free-text label.

    Matching is case-insensitive and ignores surrounding whitespace. A label
    without a weekday token resolves to ``weekday=None``.
    """
    if not label or not label.strip():
        return ParsedLabel(weekday=None, time_of_day=None)

    text = label.strip()
    lowered = text.lower()

    weekday = None
    clock = None
    day_match = _WEEKDAY_TOKEN.search(text)
    if day_match:
        weekday = _WEEKDAY_BY_PREFIX[day_match.group(1)[:3].lower()]
        clock = _clock_after(text[day_match.end() :])

    if "afternoon" in lowered:
        time_of_day = AFTERNOON_TIME
    elif "morning" in lowered:
        time_of_day = MORNING_TIME
    else:
        time_of_day = clock

    return ParsedLabel(weekday=weekday, time_of_day=time_of_day)
