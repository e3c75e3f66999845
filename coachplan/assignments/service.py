"""Assignment manager.

Owns the coach/client negotiation over a workout plan:

    assigned --accept--> applied --(complete | overdue | cancel)--> ...
    assigned --reject--> rejected
    assigned --withdraw--> (deleted)

Every call receives the caller as an explicit ``Actor``. Transitions from
an invalid status raise ``InvalidStateTransitionError`` before anything is
written, so a rejected call leaves persisted state untouched.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from coachplan.applied.service import list_plan_workouts, materialize_plan
from coachplan.assignments.state_machine import current_status, ensure_status, transition
from coachplan.assignments.types import (
    AcceptAssignmentRequest,
    AssignmentRoleFilter,
    AssignmentStatus,
    CreateAssignmentRequest,
)
from coachplan.core.errors import InvalidStateTransitionError, NotAuthorizedError, NotFoundError, ValidationError
from coachplan.core.locks import load_for_update
from coachplan.core.permissions import Actor, require_coach_access, require_role
from coachplan.db.models import AppliedWorkoutPlan, ScheduledWorkout, WorkoutPlanAssignment
from coachplan.db.session import get_session, locked_session
from coachplan.schedule.validation import validate_weekdays, validate_weeks_count, weekday_values
from coachplan.templates.repository import get_template, is_template_usable_by


@dataclass(frozen=True)
class AcceptResult:
    assignment: WorkoutPlanAssignment
    applied_plan: AppliedWorkoutPlan
    scheduled_workouts: list[ScheduledWorkout]


@dataclass(frozen=True)
class AssignmentSnapshot:
    """Detached copy of a deleted assignment, returned by withdraw."""

    id: str
    coach_id: str
    client_id: str
    template_id: str
    selected_weekdays: list[str]
    weeks_count: int
    suggested_start_date: date
    due_date: date
    notes: str | None
    status: str
    applied_plan_id: str | None
    created_at: datetime
    updated_at: datetime


def _load(session: Session, assignment_id: str) -> WorkoutPlanAssignment:
    return load_for_update(session, WorkoutPlanAssignment, assignment_id, "WorkoutPlanAssignment")


def _ensure_client_of(actor: Actor, assignment: WorkoutPlanAssignment, action: str) -> None:
    require_role(actor, "client", action)
    if assignment.client_id != actor.user_id:
        raise NotAuthorizedError(f"Only the assigned client can {action}", user_id=actor.user_id)


def _ensure_coach_of(actor: Actor, assignment: WorkoutPlanAssignment, action: str) -> None:
    if actor.is_system:
        return
    require_role(actor, "coach", action)
    if assignment.coach_id != actor.user_id:
        raise NotAuthorizedError(f"Only the coach who created the assignment can {action}", user_id=actor.user_id)


def create_assignment(session: Session, actor: Actor, request: CreateAssignmentRequest) -> WorkoutPlanAssignment:
    """Offer a template to a client.

    Raises:
        NotAuthorizedError: If the actor is not a coach of the client, or cannot use the template
        NotFoundError: If the template does not exist
        ValidationError: If dates, weekdays or weeks_count are invalid
    """
    require_role(actor, "coach", "assign a workout plan")
    require_coach_access(session, actor.user_id, request.client_id)

    weekdays = validate_weekdays(request.selected_weekdays)
    validate_weeks_count(request.weeks_count)
    if request.due_date <= request.suggested_start_date:
        raise ValidationError(
            "due_date",
            "Due date must be after the suggested start date",
            due_date=request.due_date.isoformat(),
            suggested_start_date=request.suggested_start_date.isoformat(),
        )

    template = get_template(session, request.template_id)
    if not is_template_usable_by(template, actor.user_id):
        raise NotAuthorizedError("Template is neither owned by the coach nor public", user_id=actor.user_id)
    if not template.daily_plans:
        raise ValidationError("template_id", "Template has no daily plans", template_id=template.id)

    assignment = WorkoutPlanAssignment(
        coach_id=actor.user_id,
        client_id=request.client_id,
        template_id=template.id,
        selected_weekdays=weekday_values(weekdays),
        weeks_count=request.weeks_count,
        suggested_start_date=request.suggested_start_date,
        due_date=request.due_date,
        notes=request.notes.strip() if request.notes and request.notes.strip() else None,
        status=AssignmentStatus.ASSIGNED.value,
    )
    session.add(assignment)
    session.flush()
    logger.info(
        "Workout plan assigned",
        assignment_id=assignment.id,
        coach_id=actor.user_id,
        client_id=request.client_id,
        template_id=template.id,
    )
    return assignment


def _matches_applied_plan(applied_plan: AppliedWorkoutPlan, request: AcceptAssignmentRequest, weekdays: list[str]) -> bool:
    return (
        applied_plan.start_date == request.start_date
        and list(applied_plan.selected_weekdays) == weekdays
        and applied_plan.weeks_count == request.weeks_count
    )


def accept_assignment(
    session: Session,
    actor: Actor,
    assignment_id: str,
    request: AcceptAssignmentRequest,
) -> AcceptResult:
    """Accept an assignment and materialize its schedule.

    Idempotent: accepting an already applied assignment with the same
    parameters returns the existing applied plan and sessions.

    Raises:
        InvalidStateTransitionError: If not assigned, or applied with different parameters
        NotAuthorizedError: If the actor is not the assignment's client
        ValidationError: If the adjusted parameters are invalid, or the
            generated schedule does not end before the due date
    """
    assignment = _load(session, assignment_id)
    _ensure_client_of(actor, assignment, "accept this assignment")

    status = current_status(assignment)
    if status == AssignmentStatus.APPLIED and assignment.applied_plan_id is not None:
        weekdays = validate_weekdays(request.selected_weekdays)
        applied_plan = session.get(AppliedWorkoutPlan, assignment.applied_plan_id)
        if applied_plan is not None and _matches_applied_plan(applied_plan, request, weekday_values(weekdays)):
            logger.info("Assignment already accepted, returning existing schedule", assignment_id=assignment.id)
            return AcceptResult(assignment, applied_plan, list_plan_workouts(session, applied_plan.id))
    if status != AssignmentStatus.ASSIGNED:
        raise InvalidStateTransitionError("assignment", assignment.id, status.value, "accept")

    weekdays = validate_weekdays(request.selected_weekdays)
    validate_weeks_count(request.weeks_count)

    template = get_template(session, assignment.template_id)
    applied_plan, workouts = materialize_plan(
        session,
        user_id=assignment.client_id,
        template=template,
        weekdays=weekdays,
        weeks_count=request.weeks_count,
        start_date=request.start_date,
        assignment_id=assignment.id,
        due_date=assignment.due_date,
    )

    transition(assignment, AssignmentStatus.APPLIED, "accept")
    assignment.applied_plan_id = applied_plan.id
    assignment.responded_at = datetime.now(timezone.utc)
    session.flush()
    logger.info("Assignment accepted", assignment_id=assignment.id, applied_plan_id=applied_plan.id, sessions=len(workouts))
    return AcceptResult(assignment, applied_plan, workouts)


def reject_assignment(session: Session, actor: Actor, assignment_id: str) -> WorkoutPlanAssignment:
    """Client declines an assignment. Terminal; no schedule is generated."""
    assignment = _load(session, assignment_id)
    _ensure_client_of(actor, assignment, "reject this assignment")
    ensure_status(assignment, {AssignmentStatus.ASSIGNED}, "reject")

    transition(assignment, AssignmentStatus.REJECTED, "reject")
    assignment.responded_at = datetime.now(timezone.utc)
    session.flush()
    return assignment


def withdraw_assignment(session: Session, actor: Actor, assignment_id: str) -> AssignmentSnapshot:
    """Coach deletes an assignment the client has not answered yet."""
    assignment = _load(session, assignment_id)
    _ensure_coach_of(actor, assignment, "withdraw this assignment")
    ensure_status(assignment, {AssignmentStatus.ASSIGNED}, "withdraw")

    snapshot = AssignmentSnapshot(
        id=assignment.id,
        coach_id=assignment.coach_id,
        client_id=assignment.client_id,
        template_id=assignment.template_id,
        selected_weekdays=list(assignment.selected_weekdays),
        weeks_count=assignment.weeks_count,
        suggested_start_date=assignment.suggested_start_date,
        due_date=assignment.due_date,
        notes=assignment.notes,
        status=assignment.status,
        applied_plan_id=assignment.applied_plan_id,
        created_at=assignment.created_at,
        updated_at=assignment.updated_at,
    )
    session.delete(assignment)
    session.flush()
    logger.info("Assignment withdrawn", assignment_id=snapshot.id, coach_id=actor.user_id)
    return snapshot


def _deactivate_plan(session: Session, assignment: WorkoutPlanAssignment) -> None:
    # Callers hold the assignment row already; the plan is locked second on every path.
    if assignment.applied_plan_id is None:
        return
    applied_plan = load_for_update(session, AppliedWorkoutPlan, assignment.applied_plan_id, "AppliedWorkoutPlan")
    if applied_plan.is_active:
        applied_plan.is_active = False
        applied_plan.updated_at = datetime.now(timezone.utc)


def mark_overdue(session: Session, actor: Actor, assignment_id: str) -> WorkoutPlanAssignment:
    assignment = _load(session, assignment_id)
    _ensure_coach_of(actor, assignment, "mark this assignment overdue")
    ensure_status(assignment, {AssignmentStatus.APPLIED, AssignmentStatus.OVERDUE}, "mark_overdue")
    transition(assignment, AssignmentStatus.OVERDUE, "mark_overdue")
    session.flush()
    return assignment


def mark_completed(session: Session, actor: Actor, assignment_id: str) -> WorkoutPlanAssignment:
    assignment = _load(session, assignment_id)
    _ensure_coach_of(actor, assignment, "complete this assignment")
    ensure_status(
        assignment,
        {AssignmentStatus.APPLIED, AssignmentStatus.OVERDUE, AssignmentStatus.COMPLETED},
        "mark_completed",
    )
    if transition(assignment, AssignmentStatus.COMPLETED, "mark_completed"):
        _deactivate_plan(session, assignment)
    session.flush()
    return assignment


def cancel_assignment(session: Session, actor: Actor, assignment_id: str) -> WorkoutPlanAssignment:
    assignment = _load(session, assignment_id)
    _ensure_coach_of(actor, assignment, "cancel this assignment")
    ensure_status(
        assignment,
        {AssignmentStatus.APPLIED, AssignmentStatus.OVERDUE, AssignmentStatus.CANCELLED},
        "cancel",
    )
    if transition(assignment, AssignmentStatus.CANCELLED, "cancel"):
        _deactivate_plan(session, assignment)
    session.flush()
    return assignment


def _schedule_is_finished(session: Session, applied_plan_id: str | None) -> bool:
    if applied_plan_id is None:
        return False
    workouts = list_plan_workouts(session, applied_plan_id)
    return bool(workouts) and all(workout.is_completed for workout in workouts)


def sweep_candidates(session: Session, actor: Actor, *, coach_id: str | None = None) -> list[str]:
    """Ids of running (applied or overdue) assignments the actor may sweep.

    A coach only ever sweeps their own assignments; the system actor may
    restrict the sweep with ``coach_id``.
    """
    if not (actor.is_system or actor.is_coach):
        raise NotAuthorizedError("Only a coach or the system can run the overdue sweep", user_id=actor.user_id)
    if actor.is_coach:
        coach_id = actor.user_id

    stmt = select(WorkoutPlanAssignment.id).where(
        WorkoutPlanAssignment.status.in_([AssignmentStatus.APPLIED.value, AssignmentStatus.OVERDUE.value])
    )
    if coach_id is not None:
        stmt = stmt.where(WorkoutPlanAssignment.coach_id == coach_id)
    return list(session.execute(stmt.order_by(WorkoutPlanAssignment.id)).scalars().all())


def sweep_assignment(session: Session, assignment_id: str, today: date) -> WorkoutPlanAssignment | None:
    """Re-check one running assignment against its sessions and due date.

    - applied or overdue with every session completed -> completed
    - applied past its due date -> overdue

    Returns:
        The assignment if its status changed, else None
    """
    assignment = _load(session, assignment_id)
    if current_status(assignment) not in {AssignmentStatus.APPLIED, AssignmentStatus.OVERDUE}:
        return None
    if _schedule_is_finished(session, assignment.applied_plan_id):
        if transition(assignment, AssignmentStatus.COMPLETED, "mark_completed"):
            _deactivate_plan(session, assignment)
            session.flush()
            return assignment
        return None
    if current_status(assignment) == AssignmentStatus.APPLIED and assignment.due_date < today:
        transition(assignment, AssignmentStatus.OVERDUE, "mark_overdue")
        session.flush()
        return assignment
    return None


def sweep_overdue(session: Session, actor: Actor, today: date, *, coach_id: str | None = None) -> list[WorkoutPlanAssignment]:
    """Sweep running assignments inside the caller's transaction.

    Args:
        today: Reference date (no clock is read here)
        coach_id: Restrict the sweep to one coach's assignments

    Returns:
        Assignments whose status changed
    """
    changed: list[WorkoutPlanAssignment] = []
    for assignment_id in sweep_candidates(session, actor, coach_id=coach_id):
        assignment = sweep_assignment(session, assignment_id, today)
        if assignment is not None:
            changed.append(assignment)
    logger.info("Overdue sweep finished", today=today.isoformat(), coach_id=coach_id, changed=len(changed))
    return changed


def run_overdue_sweep(actor: Actor, today: date, *, coach_id: str | None = None) -> list[WorkoutPlanAssignment]:
    """Externally triggered sweep, one locked transaction per assignment.

    Each assignment is re-checked under ``aggregate_lock("assignment", id)``,
    the same key the accept/cancel/complete endpoints take, so the sweep
    never interleaves with another writer of that assignment. Rows swept
    before a failure stay committed; re-running is safe.

    Returns:
        Detached assignments whose status changed
    """
    with get_session() as session:
        candidates = sweep_candidates(session, actor, coach_id=coach_id)

    changed: list[WorkoutPlanAssignment] = []
    for assignment_id in candidates:
        with locked_session("assignment", assignment_id) as session:
            assignment = sweep_assignment(session, assignment_id, today)
        if assignment is not None:
            changed.append(assignment)
    logger.info("Overdue sweep finished", today=today.isoformat(), coach_id=coach_id, changed=len(changed))
    return changed


def get_assignment(session: Session, actor: Actor, assignment_id: str) -> WorkoutPlanAssignment:
    assignment = session.get(WorkoutPlanAssignment, assignment_id)
    if assignment is None:
        raise NotFoundError("WorkoutPlanAssignment", assignment_id)
    if actor.user_id not in {assignment.coach_id, assignment.client_id}:
        raise NotAuthorizedError("Assignment belongs to another coach and client", user_id=actor.user_id)
    return assignment


def list_assignments(
    session: Session,
    actor: Actor,
    *,
    role: AssignmentRoleFilter = "auto",
    status: AssignmentStatus | None = None,
) -> Sequence[WorkoutPlanAssignment]:
    """Assignments the actor created (coach view) or received (client view)."""
    effective_role = actor.role if role == "auto" else role
    if effective_role == "coach":
        stmt = select(WorkoutPlanAssignment).where(WorkoutPlanAssignment.coach_id == actor.user_id)
    elif effective_role == "client":
        stmt = select(WorkoutPlanAssignment).where(WorkoutPlanAssignment.client_id == actor.user_id)
    else:
        raise ValidationError("role", f"Unsupported role filter '{role}'")

    if status is not None:
        stmt = stmt.where(WorkoutPlanAssignment.status == status.value)
    stmt = stmt.order_by(WorkoutPlanAssignment.created_at.desc(), WorkoutPlanAssignment.id)
    return session.execute(stmt).scalars().all()
