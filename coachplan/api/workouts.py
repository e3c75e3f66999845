"""API endpoints for applied plans, scheduled workouts and exercise progress."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from coachplan.api.dependencies.auth import get_current_actor
from coachplan.api.schemas import (
    AppliedPlanEnvelope,
    AppliedPlanResponse,
    AppliedPlansEnvelope,
    ApplyPlanBody,
    ProgressEnvelope,
    RecordProgressBody,
    ScheduledWorkoutEnvelope,
    ScheduledWorkoutResponse,
    ScheduledWorkoutsEnvelope,
)
from coachplan.applied import service as applied_service
from coachplan.core.permissions import Actor
from coachplan.db.session import get_session, locked_session
from coachplan.tracking import service as tracking_service

router = APIRouter(prefix="/api", tags=["workouts"])


@router.post("/applied-plans", response_model=AppliedPlanEnvelope, status_code=201)
def apply_plan(
    body: ApplyPlanBody,
    actor: Actor = Depends(get_current_actor),
) -> AppliedPlanEnvelope:
    """Apply a template to the caller's own calendar."""
    with get_session() as session:
        applied_plan, workouts = applied_service.apply_plan(
            session,
            actor,
            template_id=body.template_id,
            selected_weekdays=body.selected_weekdays,
            weeks_count=body.weeks_count,
            start_date=body.start_date,
        )
        return AppliedPlanEnvelope(
            message="Workout plan applied successfully",
            applied_plan=AppliedPlanResponse.from_model(applied_plan, workouts),
            scheduled_workouts=[ScheduledWorkoutResponse.from_model(w) for w in workouts],
        )


@router.get("/applied-plans", response_model=AppliedPlansEnvelope)
def list_applied_plans(
    active_only: bool = Query(default=False),
    actor: Actor = Depends(get_current_actor),
) -> AppliedPlansEnvelope:
    with get_session() as session:
        plans = applied_service.list_applied_plans(session, actor, active_only=active_only)
        return AppliedPlansEnvelope(
            message=f"Found {len(plans)} applied plan(s)",
            applied_plans=[AppliedPlanResponse.from_model(p, list(p.scheduled_workouts)) for p in plans],
        )


@router.get("/applied-plans/{applied_plan_id}", response_model=AppliedPlanEnvelope)
def get_applied_plan(
    applied_plan_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AppliedPlanEnvelope:
    with get_session() as session:
        applied_plan = applied_service.get_applied_plan(session, actor, applied_plan_id)
        workouts = list(applied_plan.scheduled_workouts)
        return AppliedPlanEnvelope(
            message="Applied plan retrieved",
            applied_plan=AppliedPlanResponse.from_model(applied_plan, workouts),
            scheduled_workouts=[ScheduledWorkoutResponse.from_model(w) for w in workouts],
        )


@router.post("/applied-plans/{applied_plan_id}/deactivate", response_model=AppliedPlanEnvelope)
def deactivate_applied_plan(
    applied_plan_id: str,
    actor: Actor = Depends(get_current_actor),
) -> AppliedPlanEnvelope:
    with get_session() as session:
        lock_kind, lock_id = applied_service.deactivation_lock_key(session, applied_plan_id)
    with locked_session(lock_kind, lock_id) as session:
        applied_plan = applied_service.deactivate_applied_plan(session, actor, applied_plan_id)
        workouts = applied_service.list_plan_workouts(session, applied_plan.id)
        return AppliedPlanEnvelope(
            message="Applied workout plan deactivated successfully",
            applied_plan=AppliedPlanResponse.from_model(applied_plan, workouts),
        )


@router.get("/scheduled-workouts", response_model=ScheduledWorkoutsEnvelope)
def list_scheduled_workouts(
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    completed: bool | None = Query(default=None),
    applied_plan_id: str | None = Query(default=None),
    actor: Actor = Depends(get_current_actor),
) -> ScheduledWorkoutsEnvelope:
    with get_session() as session:
        workouts = tracking_service.list_scheduled_workouts(
            session,
            actor,
            date_from=date_from,
            date_to=date_to,
            completed=completed,
            applied_plan_id=applied_plan_id,
        )
        return ScheduledWorkoutsEnvelope(
            message=f"Found {len(workouts)} scheduled workout(s)",
            scheduled_workouts=[ScheduledWorkoutResponse.from_model(w) for w in workouts],
        )


@router.get("/scheduled-workouts/{scheduled_workout_id}", response_model=ScheduledWorkoutEnvelope)
def get_scheduled_workout(
    scheduled_workout_id: str,
    actor: Actor = Depends(get_current_actor),
) -> ScheduledWorkoutEnvelope:
    with get_session() as session:
        workout = tracking_service.get_scheduled_workout(session, actor, scheduled_workout_id)
        return ScheduledWorkoutEnvelope(
            message="Scheduled workout retrieved",
            scheduled_workout=ScheduledWorkoutResponse.from_model(workout),
        )


@router.get("/scheduled-workouts/{scheduled_workout_id}/progress", response_model=ProgressEnvelope)
def get_progress(
    scheduled_workout_id: str,
    actor: Actor = Depends(get_current_actor),
) -> ProgressEnvelope:
    with get_session() as session:
        progress = tracking_service.get_progress(session, actor, scheduled_workout_id)
        return ProgressEnvelope(message="Exercise progress retrieved", progress=progress)


@router.post(
    "/scheduled-workouts/{scheduled_workout_id}/exercises/{exercise_spec_id}/complete",
    response_model=ProgressEnvelope,
)
def complete_exercise(
    scheduled_workout_id: str,
    exercise_spec_id: str,
    body: RecordProgressBody,
    actor: Actor = Depends(get_current_actor),
) -> ProgressEnvelope:
    with locked_session("scheduled_workout", scheduled_workout_id) as session:
        progress = tracking_service.record_progress(
            session,
            actor,
            scheduled_workout_id,
            exercise_spec_id,
            body.completed_sets,
            body.notes,
        )
        return ProgressEnvelope(message="Exercise progress recorded", progress=progress)


@router.post(
    "/scheduled-workouts/{scheduled_workout_id}/exercises/{exercise_spec_id}/uncomplete",
    response_model=ProgressEnvelope,
)
def uncomplete_exercise(
    scheduled_workout_id: str,
    exercise_spec_id: str,
    actor: Actor = Depends(get_current_actor),
) -> ProgressEnvelope:
    with locked_session("scheduled_workout", scheduled_workout_id) as session:
        progress = tracking_service.uncomplete_exercise(session, actor, scheduled_workout_id, exercise_spec_id)
        return ProgressEnvelope(message="Exercise marked as not completed", progress=progress)


@router.post("/scheduled-workouts/{scheduled_workout_id}/complete-all", response_model=ScheduledWorkoutEnvelope)
def complete_workout(
    scheduled_workout_id: str,
    actor: Actor = Depends(get_current_actor),
) -> ScheduledWorkoutEnvelope:
    """Complete every exercise of the workout in one atomic call. Safe to retry."""
    with locked_session("scheduled_workout", scheduled_workout_id) as session:
        workout = tracking_service.complete_all(session, actor, scheduled_workout_id)
        return ScheduledWorkoutEnvelope(
            message="Workout completed",
            scheduled_workout=ScheduledWorkoutResponse.from_model(workout),
        )
