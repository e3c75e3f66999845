"""API endpoints for coach-to-client workout plan assignments."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from loguru import logger

from coachplan.api.dependencies.auth import get_current_actor
from coachplan.api.schemas import (
    AcceptEnvelope,
    AppliedPlanResponse,
    AssignmentEnvelope,
    AssignmentResponse,
    AssignmentsEnvelope,
    ScheduledWorkoutResponse,
    TemplatesEnvelope,
    TemplateSummaryResponse,
)
from coachplan.assignments import service
from coachplan.assignments.types import (
    AcceptAssignmentRequest,
    AssignmentRoleFilter,
    AssignmentStatus,
    CreateAssignmentRequest,
)
from coachplan.core.permissions import Actor, require_coach_access, require_role
from coachplan.db.session import get_session, locked_session
from coachplan.templates.repository import list_assignable_templates

router = APIRouter(prefix="/api", tags=["assignments"])


@router.post("/assignments", response_model=AssignmentEnvelope, status_code=201)
def create_assignment(
    body: CreateAssignmentRequest,
    actor: Actor = Depends(get_current_actor),
) -> AssignmentEnvelope:
    """Offer a workout plan template to one of the coach's clients."""
    logger.info("Creating assignment", coach_id=actor.user_id, client_id=body.client_id, template_id=body.template_id)
    with get_session() as session:
        assignment = service.create_assignment(session, actor, body)
        return AssignmentEnvelope(
            message="Workout plan assigned successfully",
            assignment=AssignmentResponse.from_model(assignment),
        )


@router.get("/assignments", response_model=AssignmentsEnvelope)
def list_assignments(
    role: AssignmentRoleFilter = Query(default="auto"),
    status: AssignmentStatus | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
) -> AssignmentsEnvelope:
    with get_session() as session:
        assignments = service.list_assignments(session, actor, role=role, status=status)
        return AssignmentsEnvelope(
            message=f"Found {len(assignments)} assignment(s)",
            assignments=[AssignmentResponse.from_model(a) for a in assignments],
        )


@router.post("/assignments/sweep-overdue", response_model=AssignmentsEnvelope)
def sweep_overdue(
    today: date | None = Query(default=None, description="Reference date, defaults to the server date"),
    actor: Actor = Depends(get_current_actor),
) -> AssignmentsEnvelope:
    """Mark the coach's running assignments overdue or completed."""
    require_role(actor, "coach", "run the overdue sweep")
    changed = service.run_overdue_sweep(actor, today or date.today())
    return AssignmentsEnvelope(
        message=f"Updated {len(changed)} assignment(s)",
        assignments=[AssignmentResponse.from_model(a) for a in changed],
    )


@router.get("/assignments/{assignment_id}", response_model=AssignmentEnvelope)
def get_assignment(
    assignment_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AssignmentEnvelope:
    with get_session() as session:
        assignment = service.get_assignment(session, actor, assignment_id)
        return AssignmentEnvelope(message="Assignment retrieved", assignment=AssignmentResponse.from_model(assignment))


@router.post("/assignments/{assignment_id}/accept", response_model=AcceptEnvelope)
def accept_assignment(
    assignment_id: str,
    body: AcceptAssignmentRequest,
    actor: Actor = Depends(get_current_actor),
) -> AcceptEnvelope:
    """Accept an assignment; generates the client's scheduled workouts.

    Safe to retry: a repeated accept with the same body returns the same schedule.
    """
    with locked_session("assignment", assignment_id) as session:
        result = service.accept_assignment(session, actor, assignment_id, body)
        return AcceptEnvelope(
            message="Workout plan assignment accepted",
            assignment=AssignmentResponse.from_model(result.assignment),
            applied_plan=AppliedPlanResponse.from_model(result.applied_plan, result.scheduled_workouts),
            scheduled_workouts=[ScheduledWorkoutResponse.from_model(w) for w in result.scheduled_workouts],
        )


@router.post("/assignments/{assignment_id}/reject", response_model=AssignmentEnvelope)
def reject_assignment(
    assignment_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AssignmentEnvelope:
    with locked_session("assignment", assignment_id) as session:
        assignment = service.reject_assignment(session, actor, assignment_id)
        return AssignmentEnvelope(message="Workout plan assignment rejected", assignment=AssignmentResponse.from_model(assignment))


@router.post("/assignments/{assignment_id}/withdraw", response_model=AssignmentEnvelope)
def withdraw_assignment(
    assignment_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AssignmentEnvelope:
    with locked_session("assignment", assignment_id) as session:
        snapshot = service.withdraw_assignment(session, actor, assignment_id)
        return AssignmentEnvelope(message="Workout plan assignment withdrawn", assignment=AssignmentResponse.from_model(snapshot))


@router.post("/assignments/{assignment_id}/complete", response_model=AssignmentEnvelope)
def complete_assignment(
    assignment_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AssignmentEnvelope:
    with locked_session("assignment", assignment_id) as session:
        assignment = service.mark_completed(session, actor, assignment_id)
        return AssignmentEnvelope(message="Assignment completed", assignment=AssignmentResponse.from_model(assignment))


@router.post("/assignments/{assignment_id}/overdue", response_model=AssignmentEnvelope)
def overdue_assignment(
    assignment_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AssignmentEnvelope:
    with locked_session("assignment", assignment_id) as session:
        assignment = service.mark_overdue(session, actor, assignment_id)
        return AssignmentEnvelope(message="Assignment marked overdue", assignment=AssignmentResponse.from_model(assignment))


@router.post("/assignments/{assignment_id}/cancel", response_model=AssignmentEnvelope)
def cancel_assignment(
    assignment_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AssignmentEnvelope:
    with locked_session("assignment", assignment_id) as session:
        assignment = service.cancel_assignment(session, actor, assignment_id)
        return AssignmentEnvelope(message="Assignment cancelled", assignment=AssignmentResponse.from_model(assignment))


@router.get("/templates/assignable/{client_id}", response_model=TemplatesEnvelope)
def get_assignable_templates(
    client_id: str,
    search: str | None = Query(default=None),
    include_own: bool = Query(default=True),
    include_public: bool = Query(default=True),
    actor: Actor = Depends(get_current_actor),
) -> TemplatesEnvelope:
    """Templates the coach may assign to this client."""
    require_role(actor, "coach", "list assignable plans")
    with get_session() as session:
        require_coach_access(session, actor.user_id, client_id)
        templates = list_assignable_templates(
            session,
            actor.user_id,
            search=search,
            include_own=include_own,
            include_public=include_public,
        )
        return TemplatesEnvelope(
            message=f"Found {len(templates)} assignable plan(s)",
            templates=[TemplateSummaryResponse.from_model(t, actor.user_id) for t in templates],
        )
