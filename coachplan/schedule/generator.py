"""Schedule generator.

Expands a workout-plan template into dated sessions. Pure and
deterministic: identical input always yields identical output, which is
what makes accept and regeneration idempotent.

Mapping rule:
- Week ``w`` (0-based) is the Monday-based calendar week starting at
  ``monday_of(start_date) + 7 * w``; ``weeks_count`` such weeks are visited.
- Inside a week, selected weekdays are visited Monday to Sunday. Dates
  before ``start_date`` are skipped, never shifted.
- Every emitted date gets exactly one daily plan, round-robin in template
  day order: the k-th emitted session runs ``daily_plans[k % n]``. Daily
  plans repeat when weekdays outnumber them; the rotation carries over into
  following slots when daily plans outnumber weekdays.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta
from typing import Protocol

from coachplan.core.errors import InvalidScheduleInputError
from coachplan.schedule.types import WEEKDAY_ORDER, ScheduleDraft, Weekday

MIN_WEEKS = 1
MAX_WEEKS = 52


class DailyPlanLike(Protocol):
    id: str
    day: str


class TemplateLike(Protocol):
    @property
    def daily_plans(self) -> Sequence[DailyPlanLike]: ...


def normalize_weekdays(values: Iterable[Weekday | str]) -> list[Weekday]:
    """Parse weekdays and return them in Monday-to-Sunday order.

    Raises:
        ValueError: If a value is not a weekday name or appears twice
    """
    parsed: list[Weekday] = []
    for value in values:
        try:
            weekday = value if isinstance(value, Weekday) else Weekday(str(value).strip().lower())
        except ValueError as e:
            raise ValueError(f"'{value}' is not a weekday name") from e
        if weekday in parsed:
            raise ValueError(f"Weekday '{weekday.value}' selected more than once")
        parsed.append(weekday)
    return sorted(parsed, key=lambda w: w.iso_index)


def day_slot_index(day: str) -> int:
    """Numeric index of a symbolic day slot ("day3" -> 3)."""
    try:
        return int(day.removeprefix("day"))
    except ValueError:
        return 0


def monday_of(value: date) -> date:
    return value - timedelta(days=value.weekday())


def _validate(
    template: TemplateLike,
    selected_weekdays: Sequence[Weekday | str],
    weeks_count: int,
    start_date: date,
) -> tuple[list[DailyPlanLike], list[Weekday]]:
    if isinstance(start_date, datetime) or not isinstance(start_date, date):
        raise InvalidScheduleInputError("start_date", "start_date must be a calendar date without a time component")
    if isinstance(weeks_count, bool) or not isinstance(weeks_count, int):
        raise InvalidScheduleInputError("weeks_count", "weeks_count must be an integer")
    if weeks_count < MIN_WEEKS or weeks_count > MAX_WEEKS:
        raise InvalidScheduleInputError("weeks_count", f"weeks_count must be between {MIN_WEEKS} and {MAX_WEEKS}, got {weeks_count}")
    if not selected_weekdays:
        raise InvalidScheduleInputError("selected_weekdays", "At least one weekday must be selected")
    try:
        weekdays = normalize_weekdays(selected_weekdays)
    except ValueError as e:
        raise InvalidScheduleInputError("selected_weekdays", str(e)) from e

    daily_plans = sorted(template.daily_plans, key=lambda dp: (day_slot_index(dp.day), dp.day))
    if not daily_plans:
        raise InvalidScheduleInputError("template", "Template has no daily plans to schedule")
    return daily_plans, weekdays


def generate_schedule(
    template: TemplateLike,
    selected_weekdays: Sequence[Weekday | str],
    weeks_count: int,
    start_date: date,
) -> list[ScheduleDraft]:
    """Expand a template into an ordered list of dated session drafts.

    Args:
        template: Template whose daily plans are scheduled (read only)
        selected_weekdays: Non-empty set of calendar weekdays to train on
        weeks_count: Number of calendar weeks to cover (1..52)
        start_date: First date a session may fall on

    Returns:
        Drafts in strictly increasing date order

    Raises:
        InvalidScheduleInputError: If any input constraint is violated
    """
    daily_plans, weekdays = _validate(template, selected_weekdays, weeks_count, start_date)

    drafts: list[ScheduleDraft] = []
    first_monday = monday_of(start_date)
    for week_index in range(weeks_count):
        week_start = first_monday + timedelta(weeks=week_index)
        for weekday in weekdays:
            session_date = week_start + timedelta(days=weekday.iso_index)
            if session_date < start_date:
                continue
            daily_plan = daily_plans[len(drafts) % len(daily_plans)]
            drafts.append(
                ScheduleDraft(
                    sequence=len(drafts),
                    daily_plan_id=daily_plan.id,
                    day=daily_plan.day,
                    scheduled_date=session_date,
                    week_number=1 + (session_date - start_date).days // 7,
                )
            )
    return drafts


def expected_session_count(selected_weekdays: Sequence[Weekday | str], weeks_count: int, start_date: date) -> int:
    """Number of drafts ``generate_schedule`` emits for these inputs.

    Full weeks contribute every selected weekday; the first week loses the
    weekdays that fall before ``start_date``.
    """
    weekdays = normalize_weekdays(selected_weekdays)
    skipped = sum(1 for weekday in weekdays if weekday.iso_index < start_date.weekday())
    return weeks_count * len(weekdays) - skipped


def generation_end_date(drafts: Sequence[ScheduleDraft]) -> date | None:
    """Date of the last generated session, or None for an empty schedule."""
    return drafts[-1].scheduled_date if drafts else None


__all__ = [
    "MAX_WEEKS",
    "MIN_WEEKS",
    "WEEKDAY_ORDER",
    "expected_session_count",
    "generate_schedule",
    "generation_end_date",
    "monday_of",
    "normalize_weekdays",
]
