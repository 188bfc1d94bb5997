from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from app.features.visits.domain.occurrence import (
    format_when_text,
    next_occurrence,
    resolve_visit_time,
    to_utc_iso,
)
from app.features.visits.domain.time_labels import ClockTime, LabelResolutionError, Weekday

NEW_YORK = ZoneInfo("America/New_York")
# 2026-10-19 is a Monday
MONDAY_MORNING = datetime(2026, 10, 19, 8, 0)


def test_next_occurrence_later_this_week():
    result = next_occurrence(Weekday.WEDNESDAY, ClockTime(3, 0, "PM"), MONDAY_MORNING)

    assert result == datetime(2026, 10, 21, 15, 0)


def test_same_weekday_is_one_week_later():
    result = next_occurrence(Weekday.MONDAY, ClockTime(11, 0, "PM"), MONDAY_MORNING)

    assert result == datetime(2026, 10, 26, 23, 0)


@pytest.mark.parametrize("weekday", list(Weekday))
def test_next_occurrence_is_within_one_week(weekday):
    result = next_occurrence(weekday, ClockTime(10, 0, "AM"), MONDAY_MORNING)

    assert result.weekday() == weekday
    assert MONDAY_MORNING.date() < result.date() <= MONDAY_MORNING.date() + timedelta(days=7)


def test_next_occurrence_midnight_and_noon():
    midnight = next_occurrence(Weekday.TUESDAY, ClockTime(12, 0, "AM"), MONDAY_MORNING)
    noon = next_occurrence(Weekday.TUESDAY, ClockTime(12, 0, "PM"), MONDAY_MORNING)

    assert midnight == datetime(2026, 10, 20, 0, 0)
    assert noon == datetime(2026, 10, 20, 12, 0)


def test_resolve_label_against_fixed_now_is_repeatable():
    now = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

    first = resolve_visit_time(
        label="Wednesday afternoon", start_time=None, tz_name="America/New_York", now=now
    )
    second = resolve_visit_time(
        label="Wednesday afternoon", start_time=None, tz_name="America/New_York", now=now
    )

    assert first == second
    assert first.instant == datetime(2026, 10, 21, 15, 0, tzinfo=NEW_YORK)
    assert to_utc_iso(first.instant) == "2026-10-21T19:00:00.000Z"


def test_label_without_time_defaults_to_ten_am():
    now = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)

    resolved = resolve_visit_time(label="Friday", start_time=None, tz_name="America/New_York", now=now)

    assert resolved.time_of_day == ClockTime(10, 0, "AM")
    assert resolved.instant == datetime(2026, 10, 23, 10, 0, tzinfo=NEW_YORK)


def test_now_is_read_in_the_visit_timezone():
    # Monday 02:00 UTC is still Sunday evening in New York
    now = datetime(2026, 10, 19, 2, 0, tzinfo=UTC)

    resolved = resolve_visit_time(label="Monday", start_time=None, tz_name="America/New_York", now=now)

    assert resolved.instant == datetime(2026, 10, 19, 10, 0, tzinfo=NEW_YORK)


def test_explicit_start_time_wins_even_in_the_past():
    past = datetime(2020, 1, 1, 14, 0, tzinfo=UTC)

    resolved = resolve_visit_time(
        label="Wednesday afternoon", start_time=past, tz_name="America/New_York"
    )

    assert resolved.instant == past
    assert resolved.weekday is None


def test_naive_start_time_is_read_in_the_visit_timezone():
    resolved = resolve_visit_time(
        label=None, start_time=datetime(2026, 11, 2, 9, 0), tz_name="America/New_York"
    )

    assert to_utc_iso(resolved.instant) == "2026-11-02T14:00:00.000Z"


def test_label_without_weekday_is_rejected():
    with pytest.raises(LabelResolutionError) as exc:
        resolve_visit_time(label="next week", start_time=None, tz_name="America/New_York")

    assert "must include a weekday" in str(exc.value)
    assert exc.value.label == "next week"


def test_missing_label_and_start_time_is_rejected():
    with pytest.raises(LabelResolutionError):
        resolve_visit_time(label="  ", start_time=None, tz_name="America/New_York")


def test_unknown_timezone_is_rejected():
    with pytest.raises(LabelResolutionError):
        resolve_visit_time(label="Monday", start_time=None, tz_name="Mars/Olympus_Mons")


def test_format_when_text():
    instant = datetime(2026, 10, 21, 19, 0, tzinfo=UTC)

    assert format_when_text(instant, "America/New_York") == "Wednesday at 3:00 PM"
    assert format_when_text(instant, "UTC") == "Wednesday at 7:00 PM"
    assert format_when_text(datetime(2026, 10, 20, 0, 5, tzinfo=UTC), "UTC") == "Tuesday at 12:05 AM"
