"""Domain types for schedule generation.

Calendar weekdays (monday..sunday) are what a client trains on. They are
distinct from the symbolic day slots (day1..day7) of a template.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def iso_index(self) -> int:
        """Index matching ``date.weekday()`` (Monday == 0)."""
        return WEEKDAY_ORDER.index(self)

    @classmethod
    def from_date(cls, value: date) -> Weekday:
        return WEEKDAY_ORDER[value.weekday()]


WEEKDAY_ORDER: tuple[Weekday, ...] = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
    Weekday.SATURDAY,
    Weekday.SUNDAY,
)


class ScheduleDraft(BaseModel):
    """One generated, not yet persisted session.

    Attributes:
        sequence: 0-based position in the generated schedule
        daily_plan_id: Daily plan template the session executes
        day: Symbolic day slot of that daily plan (day1..day7)
        scheduled_date: Concrete calendar date
        week_number: 1 + (scheduled_date - start_date).days // 7
    """

    model_config = ConfigDict(frozen=True)

    sequence: int
    daily_plan_id: str
    day: str
    scheduled_date: date
    week_number: int

    @property
    def weekday(self) -> Weekday:
        return Weekday.from_date(self.scheduled_date)
