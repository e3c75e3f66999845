"""Domain types for workout plan assignments."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    APPLIED = "applied"
    REJECTED = "rejected"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Source status -> statuses reachable from it.
# "accepted" is never persisted: accept moves assigned -> applied in one transaction.
ALLOWED_TRANSITIONS: dict[AssignmentStatus, frozenset[AssignmentStatus]] = {
    AssignmentStatus.ASSIGNED: frozenset({AssignmentStatus.APPLIED, AssignmentStatus.REJECTED}),
    AssignmentStatus.APPLIED: frozenset(
        {AssignmentStatus.COMPLETED, AssignmentStatus.OVERDUE, AssignmentStatus.CANCELLED}
    ),
    AssignmentStatus.OVERDUE: frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED}),
    AssignmentStatus.REJECTED: frozenset(),
    AssignmentStatus.COMPLETED: frozenset(),
    AssignmentStatus.CANCELLED: frozenset(),
}

AssignmentRoleFilter = Literal["coach", "client", "auto"]


class CreateAssignmentRequest(BaseModel):
    """Coach request to offer a template to a client.

    Attributes:
        client_id: Client receiving the plan
        template_id: Template being offered
        selected_weekdays: Calendar weekdays to train on (monday..sunday)
        weeks_count: Number of weeks (1..52)
        suggested_start_date: Start date proposed by the coach
        due_date: Date by which the client should start; after suggested_start_date
        notes: Optional free-text note for the client
    """

    client_id: str
    template_id: str
    selected_weekdays: list[str]
    weeks_count: int
    suggested_start_date: date
    due_date: date
    notes: str | None = Field(default=None, max_length=2000)


class AcceptAssignmentRequest(BaseModel):
    """Client acceptance, possibly adjusting the coach's proposal."""

    start_date: date
    selected_weekdays: list[str]
    weeks_count: int
