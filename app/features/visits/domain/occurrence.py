"""
Occurrence calculation: weekday + clock time + "now" -> next concrete date.

Everything here takes the current time as an argument so results are
reproducible in tests and across workers.
"""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import ResolvedTime
from .time_labels import (
    DEFAULT_TIME_OF_DAY,
    ClockTime,
    LabelResolutionError,
    Weekday,
    resolve_label,
)


def next_occurrence(weekday: Weekday, time_of_day: ClockTime, now: datetime) -> datetime:
    """
    Next date after ``now`` that falls on ``weekday``, at ``time_of_day``.

    When ``now`` already is the target weekday the result is one week later,
    never the same day. The result is naive: it is wall-clock time in
    whatever zone ``now`` was expressed in, and callers attach the zone.
    """
    local_now = now.replace(tzinfo=None)
    days_ahead = (int(weekday) - local_now.weekday()) % 7 or 7

    hour, minute = time_of_day.to_24_hour()
    target = local_now + timedelta(days=days_ahead)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def load_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise LabelResolutionError(f"Unknown timezone: {tz_name}") from e


def resolve_visit_time(
    *,
    label: str | None,
    start_time: datetime | None,
    tz_name: str,
    now: datetime | None = None,
) -> ResolvedTime:
    """
    Work out when a visit should start.

    An explicit ``start_time`` always wins and is used as given (past
    instants included); a naive value is read in ``tz_name``. Otherwise the
    label is resolved against ``now`` (default: the current time in
    ``tz_name``), with ``DEFAULT_TIME_OF_DAY`` when the label names no time.

    Raises:
        LabelResolutionError: no usable label/start time, or unknown timezone
    """
    zone = load_zone(tz_name)

    if start_time is not None:
        instant = start_time if start_time.tzinfo else start_time.replace(tzinfo=zone)
        return ResolvedTime(weekday=None, time_of_day=None, instant=instant)

    if not label or not label.strip():
        raise LabelResolutionError("Either a label or a start time is required", label=label)

    parsed = resolve_label(label)
    if parsed.weekday is None:
        raise LabelResolutionError(
            'Label must include a weekday (e.g., "Wednesday", "Tue").', label=label
        )

    time_of_day = parsed.time_of_day or DEFAULT_TIME_OF_DAY
    if now is None:
        local_now = datetime.now(zone)
    elif now.tzinfo is not None:
        local_now = now.astimezone(zone)
    else:
        # naive "now" is taken to be wall-clock time in the visit's zone
        local_now = now
    wall_clock = next_occurrence(parsed.weekday, time_of_day, local_now)

    return ResolvedTime(
        weekday=parsed.weekday,
        time_of_day=time_of_day,
        instant=wall_clock.replace(tzinfo=zone),
    )


def format_when_text(instant: datetime, tz_name: str) -> str:
    """Render an instant as e.g. "Wednesday at 3:00 PM" in the given zone."""
    local = instant.astimezone(ZoneInfo(tz_name)) if instant.tzinfo else instant
    hour = local.hour % 12 or 12
    period = "AM" if local.hour < 12 else "PM"
    return f"{Weekday(local.weekday()).display_name} at {hour}:{local.minute:02d} {period}"


def to_utc_iso(instant: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a trailing Z."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    text = instant.astimezone(UTC).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")
