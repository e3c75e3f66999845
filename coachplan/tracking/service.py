"""Session tracker.

Owns per-exercise completion records of scheduled workouts and keeps each
workout's ``is_completed`` flag in agreement with those records.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from coachplan.core.errors import (
    NotAuthorizedError,
    NotFoundError,
    PartialFailureError,
    ProgressInvariantError,
    ValidationError,
)
from coachplan.core.permissions import Actor
from coachplan.db.models import (
    DailyPlanTemplate,
    ExerciseCompletionRecord,
    ExerciseSpec,
    ScheduledWorkout,
    WorkoutPlanAssignment,
)
from coachplan.tracking.progress import WorkoutProgress, build_progress, derive_is_completed, records_by_spec


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _workout_query():
    return select(ScheduledWorkout).options(
        selectinload(ScheduledWorkout.daily_plan).selectinload(DailyPlanTemplate.exercises),
        selectinload(ScheduledWorkout.completion_records),
    )


def _load_workout(session: Session, scheduled_workout_id: str, *, for_update: bool = False) -> ScheduledWorkout:
    stmt = _workout_query().where(ScheduledWorkout.id == scheduled_workout_id)
    if for_update:
        stmt = stmt.with_for_update(of=ScheduledWorkout).execution_options(populate_existing=True)
    workout = session.execute(stmt).scalar_one_or_none()
    if workout is None:
        raise NotFoundError("ScheduledWorkout", scheduled_workout_id)
    return workout


def _ensure_owner(actor: Actor, workout: ScheduledWorkout) -> None:
    if workout.user_id != actor.user_id:
        raise NotAuthorizedError("Only the client the workout is scheduled for can track it", user_id=actor.user_id)


def _ensure_can_read(session: Session, actor: Actor, workout: ScheduledWorkout) -> None:
    if workout.user_id == actor.user_id:
        return
    if actor.is_coach and workout.assignment_id is not None:
        assignment = session.get(WorkoutPlanAssignment, workout.assignment_id)
        if assignment is not None and assignment.coach_id == actor.user_id:
            return
    raise NotAuthorizedError("Workout belongs to another user", user_id=actor.user_id)


def _find_spec(workout: ScheduledWorkout, exercise_spec_id: str) -> ExerciseSpec:
    for spec in workout.daily_plan.exercises:
        if spec.id == exercise_spec_id:
            return spec
    raise NotFoundError(
        "ExerciseSpec",
        exercise_spec_id,
        f"Exercise {exercise_spec_id} is not part of the daily plan of workout {workout.id}",
    )


def _find_record(workout: ScheduledWorkout, exercise_spec_id: str) -> ExerciseCompletionRecord | None:
    for record in workout.completion_records:
        if record.exercise_spec_id == exercise_spec_id:
            return record
    return None


def _write_record(
    workout: ScheduledWorkout,
    spec: ExerciseSpec,
    completed_sets: int,
    notes: str | None,
) -> ExerciseCompletionRecord:
    """Create or update the record for one exercise (lazy creation)."""
    record = _find_record(workout, spec.id)
    if record is None:
        record = ExerciseCompletionRecord(exercise_spec_id=spec.id, completed_sets=0, is_fully_completed=False)
        workout.completion_records.append(record)

    was_complete = record.is_fully_completed
    record.completed_sets = completed_sets
    if notes is not None:
        record.notes = notes
    record.is_fully_completed = completed_sets >= spec.set_count
    if record.is_fully_completed and not was_complete:
        record.completed_at = _utcnow()
    elif not record.is_fully_completed:
        record.completed_at = None
    record.updated_at = _utcnow()
    return record


def _sync_completion(workout: ScheduledWorkout) -> None:
    """Set the workout's completion flag from its records."""
    specs = list(workout.daily_plan.exercises)
    derived = derive_is_completed(specs, records_by_spec(workout.completion_records))
    if not specs:
        # Empty daily plans only complete through complete_all
        return
    if derived and not workout.is_completed:
        workout.is_completed = True
        workout.completed_at = _utcnow()
        logger.info("Scheduled workout completed", scheduled_workout_id=workout.id)
    elif not derived and workout.is_completed:
        workout.is_completed = False
        workout.completed_at = None
        logger.info("Scheduled workout reopened", scheduled_workout_id=workout.id)


def check_consistency(workout: ScheduledWorkout) -> None:
    """Raise if the stored completion flag disagrees with the records.

    Raises:
        ProgressInvariantError: On disagreement (a defect, never recovered)
    """
    specs = list(workout.daily_plan.exercises)
    if not specs:
        return
    derived = derive_is_completed(specs, records_by_spec(workout.completion_records))
    if derived != workout.is_completed:
        logger.error(
            "Completion flag disagrees with exercise records",
            scheduled_workout_id=workout.id,
            stored=workout.is_completed,
            derived=derived,
        )
        raise ProgressInvariantError(workout.id, workout.is_completed, derived)


def record_progress(
    session: Session,
    actor: Actor,
    scheduled_workout_id: str,
    exercise_spec_id: str,
    completed_sets: int,
    notes: str | None = None,
) -> WorkoutProgress:
    """Record completed sets for one exercise and return the recomputed progress.

    Raises:
        NotFoundError: If the workout does not exist or the exercise is not in its daily plan
        NotAuthorizedError: If the actor is not the workout's client
        ValidationError: If completed_sets is outside 0..set_count
    """
    workout = _load_workout(session, scheduled_workout_id, for_update=True)
    _ensure_owner(actor, workout)
    spec = _find_spec(workout, exercise_spec_id)

    if completed_sets < 0 or completed_sets > spec.set_count:
        raise ValidationError(
            "completed_sets",
            f"completed_sets must be between 0 and {spec.set_count}",
            value=completed_sets,
            min=0,
            max=spec.set_count,
        )

    record = _write_record(workout, spec, completed_sets, notes)
    _sync_completion(workout)
    session.flush()
    check_consistency(workout)

    progress = build_progress(workout)
    logger.info(
        "Exercise progress recorded",
        scheduled_workout_id=workout.id,
        exercise_spec_id=spec.id,
        completed_sets=completed_sets,
        fully_completed=record.is_fully_completed,
        completion_percentage=progress.completion_percentage,
    )
    return progress


def uncomplete_exercise(
    session: Session,
    actor: Actor,
    scheduled_workout_id: str,
    exercise_spec_id: str,
) -> WorkoutProgress:
    """Reset one exercise to zero completed sets.

    An exercise without a record already has zero progress; the call then
    returns the current progress unchanged.
    """
    workout = _load_workout(session, scheduled_workout_id, for_update=True)
    _ensure_owner(actor, workout)
    spec = _find_spec(workout, exercise_spec_id)

    if _find_record(workout, spec.id) is not None:
        _write_record(workout, spec, 0, None)
        _sync_completion(workout)
        session.flush()
        logger.info("Exercise progress reset", scheduled_workout_id=workout.id, exercise_spec_id=spec.id)

    check_consistency(workout)
    return build_progress(workout)


def complete_all(session: Session, actor: Actor, scheduled_workout_id: str) -> ScheduledWorkout:
    """Mark every exercise of the workout fully completed, atomically.

    Idempotent: running it on a completed workout changes nothing.

    Raises:
        PartialFailureError: If a record write failed; every write of this call is rolled back
    """
    workout = _load_workout(session, scheduled_workout_id, for_update=True)
    _ensure_owner(actor, workout)
    specs = list(workout.daily_plan.exercises)

    failed: list[str] = []
    try:
        with session.begin_nested():
            for spec in specs:
                try:
                    _write_record(workout, spec, spec.set_count, None)
                    session.flush()
                except SQLAlchemyError:
                    failed.append(spec.id)
                    raise
            if not workout.is_completed:
                workout.is_completed = True
                workout.completed_at = _utcnow()
            session.flush()
    except SQLAlchemyError as e:
        logger.error(
            "complete_all rolled back",
            scheduled_workout_id=scheduled_workout_id,
            failed_exercise_spec_ids=failed,
            error=str(e),
        )
        raise PartialFailureError("complete_all", failed) from e

    check_consistency(workout)
    logger.info("Scheduled workout completed in bulk", scheduled_workout_id=workout.id, exercises=len(specs))
    return workout


def get_progress(session: Session, actor: Actor, scheduled_workout_id: str) -> WorkoutProgress:
    """Read-only progress of a workout; untouched exercises report zero sets."""
    workout = _load_workout(session, scheduled_workout_id)
    _ensure_can_read(session, actor, workout)
    check_consistency(workout)
    return build_progress(workout)


def get_scheduled_workout(session: Session, actor: Actor, scheduled_workout_id: str) -> ScheduledWorkout:
    workout = _load_workout(session, scheduled_workout_id)
    _ensure_can_read(session, actor, workout)
    return workout


def list_scheduled_workouts(
    session: Session,
    actor: Actor,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    completed: bool | None = None,
    applied_plan_id: str | None = None,
) -> Sequence[ScheduledWorkout]:
    """The actor's own scheduled workouts, ordered by date."""
    if date_from is not None and date_to is not None and date_to < date_from:
        raise ValidationError("date_to", "date_to must not be before date_from")

    stmt = _workout_query().where(ScheduledWorkout.user_id == actor.user_id)
    if date_from is not None:
        stmt = stmt.where(ScheduledWorkout.scheduled_date >= date_from)
    if date_to is not None:
        stmt = stmt.where(ScheduledWorkout.scheduled_date <= date_to)
    if completed is not None:
        stmt = stmt.where(ScheduledWorkout.is_completed.is_(completed))
    if applied_plan_id is not None:
        stmt = stmt.where(ScheduledWorkout.applied_plan_id == applied_plan_id)
    stmt = stmt.order_by(ScheduledWorkout.scheduled_date, ScheduledWorkout.id)
    return session.execute(stmt).scalars().all()
