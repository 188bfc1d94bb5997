import pytest

from app.features.visits.domain.time_labels import (
    AFTERNOON_TIME,
    MORNING_TIME,
    ClockTime,
    Weekday,
    resolve_label,
)


@pytest.mark.parametrize(
    "label, weekday, time_text",
    [
        ("Wednesday afternoon", Weekday.WEDNESDAY, "3:00 PM"),
        ("  WEDNESDAY   Afternoon ", Weekday.WEDNESDAY, "3:00 PM"),
        ("Tue 11am", Weekday.TUESDAY, "11:00 AM"),
        ("tues 11 AM", Weekday.TUESDAY, "11:00 AM"),
        ("Monday 9:30 am", Weekday.MONDAY, "9:30 AM"),
        ("Fri at 2pm", Weekday.FRIDAY, "2:00 PM"),
        ("sat @ 12pm", Weekday.SATURDAY, "12:00 PM"),
        ("Thursday 15:30", Weekday.THURSDAY, "15:30"),
        ("thurs morning", Weekday.THURSDAY, "10:00 AM"),
        ("Sunday", Weekday.SUNDAY, None),
        ("Mon", Weekday.MONDAY, None),
        ("Wednesday, 3pm", Weekday.WEDNESDAY, "3:00 PM"),
        ("Fri - 2pm", Weekday.FRIDAY, "2:00 PM"),
        ("Tuesday (11am)", Weekday.TUESDAY, "11:00 AM"),
        ("Thursday: 9:45 am", Weekday.THURSDAY, "9:45 AM"),
        ("Saturday, at 1pm", Weekday.SATURDAY, "1:00 PM"),
    ],
)
def test_resolve_label(label, weekday, time_text):
    parsed = resolve_label(label)

    assert parsed.weekday == weekday
    if time_text is None:
        assert parsed.time_of_day is None
    else:
        assert str(parsed.time_of_day) == time_text


@pytest.mark.parametrize("label", ["next week", "", "   ", None, "this month", "asap please"])
def test_label_without_weekday(label):
    parsed = resolve_label(label)

    assert parsed.weekday is None


def test_first_weekday_token_wins():
    assert resolve_label("Tuesday or Wednesday").weekday == Weekday.TUESDAY


def test_day_part_overrides_clock_time():
    assert resolve_label("Tuesday 11am afternoon").time_of_day == AFTERNOON_TIME
    assert resolve_label("Friday 4pm morning").time_of_day == MORNING_TIME


def test_invalid_hour_is_ignored():
    assert resolve_label("Tue 13pm").time_of_day is None
    assert resolve_label("Mon 45").time_of_day is None


def test_label_resolution_is_pure():
    assert resolve_label("Wed 1:15 pm") == resolve_label("Wed 1:15 pm")


@pytest.mark.parametrize(
    "clock, expected",
    [
        (ClockTime(12, 0, "AM"), (0, 0)),
        (ClockTime(12, 0, "PM"), (12, 0)),
        (ClockTime(1, 5, "PM"), (13, 5)),
        (ClockTime(9, 30, "AM"), (9, 30)),
        (ClockTime(18, 45), (18, 45)),
    ],
)
def test_clock_time_to_24_hour(clock, expected):
    assert clock.to_24_hour() == expected


def test_clock_time_parse():
    assert ClockTime.parse("3:00 PM") == ClockTime(3, 0, "PM")
    assert ClockTime.parse("15:30") == ClockTime(15, 30)
    with pytest.raises(ValueError):
        ClockTime.parse("afternoon")


def test_clock_time_rejects_out_of_range():
    with pytest.raises(ValueError):
        ClockTime(0, 0, "PM")
    with pytest.raises(ValueError):
        ClockTime(24, 0)
    with pytest.raises(ValueError):
        ClockTime(10, 60, "AM")
