from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from coachplan.core.errors import InvalidScheduleInputError
from coachplan.schedule.generator import (
    expected_session_count,
    generate_schedule,
    generation_end_date,
    monday_of,
    normalize_weekdays,
)
from coachplan.schedule.types import Weekday

MONDAY = date(2024, 1, 1)
TUESDAY = date(2024, 1, 2)


def _template(*days: str):
    return SimpleNamespace(daily_plans=[SimpleNamespace(id=f"dp-{day}", day=day) for day in days])


def test_tuesday_start_skips_monday_of_first_week():
    drafts = generate_schedule(_template("day1", "day2", "day3"), ["monday", "wednesday"], 2, TUESDAY)

    assert [d.scheduled_date for d in drafts] == [date(2024, 1, 3), date(2024, 1, 8), date(2024, 1, 10)]
    assert [d.day for d in drafts] == ["day1", "day2", "day3"]
    assert [d.week_number for d in drafts] == [1, 1, 2]
    assert [d.sequence for d in drafts] == [0, 1, 2]


def test_daily_plans_repeat_round_robin_when_weekdays_outnumber_them():
    drafts = generate_schedule(_template("day1", "day2"), ["monday", "wednesday", "friday"], 2, MONDAY)

    assert len(drafts) == 6
    assert [d.day for d in drafts] == ["day1", "day2", "day1", "day2", "day1", "day2"]


def test_rotation_carries_over_when_daily_plans_outnumber_weekdays():
    drafts = generate_schedule(_template("day1", "day2", "day3"), ["tuesday"], 4, MONDAY)

    assert [d.day for d in drafts] == ["day1", "day2", "day3", "day1"]
    assert all(d.weekday == Weekday.TUESDAY for d in drafts)


def test_daily_plans_follow_day_slot_order_not_insertion_order():
    drafts = generate_schedule(_template("day3", "day1", "day2"), ["monday", "tuesday", "wednesday"], 1, MONDAY)

    assert [d.day for d in drafts] == ["day1", "day2", "day3"]


@pytest.mark.parametrize("start_offset", range(7))
@pytest.mark.parametrize(
    "weekdays",
    [
        ["monday"],
        ["sunday"],
        ["monday", "wednesday", "friday"],
        ["tuesday", "thursday", "saturday", "sunday"],
        [w.value for w in Weekday],
    ],
)
def test_count_matches_expected_session_count(start_offset, weekdays):
    start = MONDAY + timedelta(days=start_offset)
    drafts = generate_schedule(_template("day1", "day2"), weekdays, 3, start)

    assert len(drafts) == expected_session_count(weekdays, 3, start)
    assert all(d.scheduled_date >= start for d in drafts)
    assert all(d.weekday.value in weekdays for d in drafts)


def test_dates_strictly_increase_and_stay_within_calendar_weeks():
    start = date(2024, 2, 15)  # Thursday
    weeks = 5
    drafts = generate_schedule(_template("day1", "day2", "day3"), ["sunday", "monday", "thursday"], weeks, start)

    dates = [d.scheduled_date for d in drafts]
    assert dates == sorted(set(dates))
    assert dates[-1] < monday_of(start) + timedelta(weeks=weeks)
    assert generation_end_date(drafts) == dates[-1]


def test_generation_is_deterministic():
    template = _template("day1", "day2", "day3")
    first = generate_schedule(template, ["friday", "monday"], 6, date(2024, 3, 6))
    second = generate_schedule(template, ["monday", "friday"], 6, date(2024, 3, 6))

    assert first == second


def test_week_number_counts_from_start_date():
    drafts = generate_schedule(_template("day1"), ["sunday"], 3, date(2024, 1, 6))  # Saturday

    assert [d.scheduled_date for d in drafts] == [date(2024, 1, 7), date(2024, 1, 14), date(2024, 1, 21)]
    assert [d.week_number for d in drafts] == [1, 2, 3]


def test_single_week_starting_after_last_weekday_is_empty():
    drafts = generate_schedule(_template("day1"), ["monday"], 1, TUESDAY)

    assert drafts == []
    assert generation_end_date(drafts) is None


def test_normalize_weekdays_sorts_and_accepts_case():
    assert normalize_weekdays(["Friday", "monday", Weekday.WEDNESDAY]) == [
        Weekday.MONDAY,
        Weekday.WEDNESDAY,
        Weekday.FRIDAY,
    ]


@pytest.mark.parametrize(
    "weekdays, weeks_count, start, field",
    [
        ([], 2, MONDAY, "selected_weekdays"),
        (["funday"], 2, MONDAY, "selected_weekdays"),
        (["monday", "monday"], 2, MONDAY, "selected_weekdays"),
        (["monday"], 0, MONDAY, "weeks_count"),
        (["monday"], 53, MONDAY, "weeks_count"),
        (["monday"], True, MONDAY, "weeks_count"),
        (["monday"], 2, datetime(2024, 1, 1, 9, 0), "start_date"),
        (["monday"], 2, "2024-01-01", "start_date"),
    ],
)
def test_invalid_input_raises(weekdays, weeks_count, start, field):
    with pytest.raises(InvalidScheduleInputError) as exc_info:
        generate_schedule(_template("day1"), weekdays, weeks_count, start)

    assert exc_info.value.details["field"] == field


def test_template_without_daily_plans_raises():
    with pytest.raises(InvalidScheduleInputError) as exc_info:
        generate_schedule(_template(), ["monday"], 1, MONDAY)

    assert exc_info.value.details["field"] == "template"
