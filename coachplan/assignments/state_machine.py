"""Assignment status transitions.

Single place where an assignment's status is changed.
"""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger

from coachplan.assignments.types import ALLOWED_TRANSITIONS, AssignmentStatus
from coachplan.core.errors import InvalidStateTransitionError
from coachplan.db.models import WorkoutPlanAssignment


def current_status(assignment: WorkoutPlanAssignment) -> AssignmentStatus:
    return AssignmentStatus(assignment.status)


def can_transition(source: AssignmentStatus, target: AssignmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[source]


def ensure_status(assignment: WorkoutPlanAssignment, allowed: set[AssignmentStatus], attempted: str) -> None:
    """Raise unless the assignment is currently in one of ``allowed``."""
    status = current_status(assignment)
    if status not in allowed:
        raise InvalidStateTransitionError("assignment", assignment.id, status.value, attempted)


def transition(assignment: WorkoutPlanAssignment, target: AssignmentStatus, attempted: str) -> bool:
    """Move an assignment to ``target``.

    Idempotent: an assignment already in ``target`` is left untouched.

    Returns:
        True if the status changed, False if it was already ``target``

    Raises:
        InvalidStateTransitionError: If ``target`` is not reachable from the current status
    """
    source = current_status(assignment)
    if source == target:
        return False
    if not can_transition(source, target):
        raise InvalidStateTransitionError("assignment", assignment.id, source.value, attempted)

    assignment.status = target.value
    assignment.updated_at = datetime.now(timezone.utc)
    logger.info(
        "Assignment status changed",
        assignment_id=assignment.id,
        from_status=source.value,
        to_status=target.value,
    )
    return True
