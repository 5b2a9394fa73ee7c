from datetime import date

import pytest

from weekweave.models.timetable_entry import DayOfWeek
from weekweave.services.calendar import (
    date_of_day_in_week,
    day_of,
    in_school_week,
    parse_day,
    period_label,
    sort_days,
    teaching_period_number,
    week_bounds,
    week_start,
)


def test_parse_day_accepts_names_and_short_forms():
    assert parse_day("Monday") == DayOfWeek.monday
    assert parse_day(" sat ") == DayOfWeek.saturday
    assert parse_day(DayOfWeek.friday) == DayOfWeek.friday
    with pytest.raises(ValueError):
        parse_day("funday")


def test_week_is_anchored_on_monday():
    assert week_start(date(2024, 3, 4)) == date(2024, 3, 4)
    assert week_start(date(2024, 3, 9)) == date(2024, 3, 4)
    # Sunday belongs to the week that started six days earlier.
    assert week_start(date(2024, 3, 10)) == date(2024, 3, 4)
    assert week_bounds(date(2024, 3, 6)) == (date(2024, 3, 4), date(2024, 3, 9))


def test_school_week_excludes_sunday():
    assert in_school_week(date(2024, 3, 9), date(2024, 3, 4))
    assert not in_school_week(date(2024, 3, 10), date(2024, 3, 4))
    assert not in_school_week(date(2024, 3, 11), date(2024, 3, 4))


def test_date_of_day_in_week():
    reference = date(2024, 3, 7)
    assert date_of_day_in_week(reference, DayOfWeek.monday) == date(2024, 3, 4)
    assert date_of_day_in_week(reference, "saturday") == date(2024, 3, 9)
    assert date_of_day_in_week(reference, DayOfWeek.sunday) == date(2024, 3, 10)
    assert day_of(date(2024, 3, 10)) == DayOfWeek.sunday


def test_sort_days_orders_by_week_position():
    assert sort_days(["fri", "Monday", "wed", "monday"]) == [
        DayOfWeek.monday,
        DayOfWeek.wednesday,
        DayOfWeek.friday,
    ]


def test_teaching_period_number_skips_breaks():
    slots = [
        {"period": 1, "is_break": False},
        {"period": 2, "is_break": False},
        {"period": 3, "is_break": True},
        {"period": 4, "is_break": False},
    ]
    assert teaching_period_number(slots, 4) == 3
    assert teaching_period_number(slots, 2) == 2
    assert teaching_period_number(slots, 3) is None
    assert period_label(slots, 3) == "Break"
    assert period_label(slots, 4) == "3"


def test_teaching_period_number_follows_current_structure():
    slots = [
        {"period": 4, "is_break": False},
        {"period": 1, "is_break": True},
        {"period": 2, "is_break": False},
    ]
    assert teaching_period_number(slots, 4) == 2
    slots[1]["is_break"] = False
    assert teaching_period_number(slots, 4) == 3
