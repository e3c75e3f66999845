"""Caller-facing validation of schedule parameters.

Raises ``ValidationError`` (user input problem) before the generator is
called, so ``InvalidScheduleInputError`` only ever signals a caller bug.
"""

from __future__ import annotations

from collections.abc import Sequence

from coachplan.config.settings import settings
from coachplan.core.errors import ValidationError
from coachplan.schedule.generator import MIN_WEEKS, normalize_weekdays
from coachplan.schedule.types import Weekday


def validate_weekdays(selected_weekdays: Sequence[str]) -> list[Weekday]:
    """Return weekdays in canonical order.

    Raises:
        ValidationError: If empty, unknown or duplicated
    """
    if not selected_weekdays:
        raise ValidationError("selected_weekdays", "At least one weekday must be selected")
    try:
        return normalize_weekdays(selected_weekdays)
    except ValueError as e:
        raise ValidationError("selected_weekdays", str(e), value=list(selected_weekdays)) from e


def validate_weeks_count(weeks_count: int) -> int:
    if weeks_count < MIN_WEEKS or weeks_count > settings.max_weeks:
        raise ValidationError(
            "weeks_count",
            f"weeks_count must be between {MIN_WEEKS} and {settings.max_weeks}",
            value=weeks_count,
            min=MIN_WEEKS,
            max=settings.max_weeks,
        )
    return weeks_count


def weekday_values(weekdays: Sequence[Weekday]) -> list[str]:
    return [weekday.value for weekday in weekdays]
