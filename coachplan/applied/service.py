"""Applied workout plans.

An applied plan is a template materialized onto one client's calendar. It is
created either by accepting a coach assignment or by self-service apply, and
owns the generated ScheduledWorkout rows.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timezone

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from coachplan.assignments.state_machine import transition
from coachplan.assignments.types import AssignmentStatus
from coachplan.core.errors import NotAuthorizedError, NotFoundError, ValidationError
from coachplan.core.locks import load_for_update
from coachplan.core.permissions import Actor, require_role
from coachplan.db.models import AppliedWorkoutPlan, ScheduledWorkout, WorkoutPlanAssignment, WorkoutPlanTemplate
from coachplan.schedule.generator import generate_schedule, generation_end_date
from coachplan.schedule.types import ScheduleDraft, Weekday
from coachplan.schedule.validation import validate_weekdays, validate_weeks_count, weekday_values
from coachplan.templates.repository import get_template, is_template_usable_by


def _existing_slots(session: Session, applied_plan_id: str) -> set[tuple[date, str]]:
    rows = session.execute(
        select(ScheduledWorkout.scheduled_date, ScheduledWorkout.daily_plan_id).where(
            ScheduledWorkout.applied_plan_id == applied_plan_id
        )
    ).all()
    return {(row.scheduled_date, row.daily_plan_id) for row in rows}


def persist_drafts(
    session: Session,
    applied_plan: AppliedWorkoutPlan,
    drafts: Sequence[ScheduleDraft],
) -> list[ScheduledWorkout]:
    """Insert ScheduledWorkout rows for drafts not yet persisted.

    Slots already present for the plan are skipped, so running this twice
    with the same drafts never duplicates sessions.

    Returns:
        All scheduled workouts of the plan, ordered by date
    """
    existing = _existing_slots(session, applied_plan.id)
    created = 0
    for draft in drafts:
        if (draft.scheduled_date, draft.daily_plan_id) in existing:
            continue
        session.add(
            ScheduledWorkout(
                applied_plan_id=applied_plan.id,
                assignment_id=applied_plan.assignment_id,
                user_id=applied_plan.user_id,
                daily_plan_id=draft.daily_plan_id,
                scheduled_date=draft.scheduled_date,
                week_number=draft.week_number,
            )
        )
        created += 1
    session.flush()
    logger.debug("Persisted scheduled workouts", applied_plan_id=applied_plan.id, created=created, skipped=len(drafts) - created)
    return list_plan_workouts(session, applied_plan.id)


def materialize_plan(
    session: Session,
    *,
    user_id: str,
    template: WorkoutPlanTemplate,
    weekdays: Sequence[Weekday],
    weeks_count: int,
    start_date: date,
    assignment_id: str | None = None,
    due_date: date | None = None,
) -> tuple[AppliedWorkoutPlan, list[ScheduledWorkout]]:
    """Generate a schedule and persist it as a new applied plan.

    Nothing is written unless the whole schedule is valid.

    Raises:
        ValidationError: If no session falls on or after start_date, or the
            last session is not strictly before due_date
    """
    drafts = generate_schedule(template, weekdays, weeks_count, start_date)
    end_date = generation_end_date(drafts)
    if end_date is None:
        raise ValidationError(
            "selected_weekdays",
            "No session falls on or after start_date with the selected weekdays and weeks_count",
            start_date=start_date.isoformat(),
        )
    if due_date is not None and end_date >= due_date:
        raise ValidationError(
            "due_date",
            "Generated schedule must end before the assignment due date",
            generated_end=end_date.isoformat(),
            due_date=due_date.isoformat(),
        )

    applied_plan = AppliedWorkoutPlan(
        user_id=user_id,
        template_id=template.id,
        assignment_id=assignment_id,
        selected_weekdays=weekday_values(weekdays),
        weeks_count=weeks_count,
        start_date=start_date,
        end_date=end_date,
        is_active=True,
    )
    session.add(applied_plan)
    session.flush()

    workouts = persist_drafts(session, applied_plan, drafts)
    logger.info(
        "Applied workout plan materialized",
        applied_plan_id=applied_plan.id,
        user_id=user_id,
        template_id=template.id,
        assignment_id=assignment_id,
        sessions=len(workouts),
        start_date=start_date.isoformat(),
        end_date=end_date.isoformat(),
    )
    return applied_plan, workouts


def list_plan_workouts(session: Session, applied_plan_id: str) -> list[ScheduledWorkout]:
    return list(
        session.execute(
            select(ScheduledWorkout)
            .where(ScheduledWorkout.applied_plan_id == applied_plan_id)
            .order_by(ScheduledWorkout.scheduled_date, ScheduledWorkout.id)
        )
        .scalars()
        .all()
    )


def apply_plan(
    session: Session,
    actor: Actor,
    *,
    template_id: str,
    selected_weekdays: Sequence[str],
    weeks_count: int,
    start_date: date,
) -> tuple[AppliedWorkoutPlan, list[ScheduledWorkout]]:
    """Self-service: a client applies a template to their own calendar.

    Raises:
        NotAuthorizedError: If the actor is not a client or cannot use the template
        NotFoundError: If the template does not exist
        ValidationError: If schedule parameters are invalid
    """
    require_role(actor, "client", "apply a workout plan")
    weekdays = validate_weekdays(selected_weekdays)
    validate_weeks_count(weeks_count)

    template = get_template(session, template_id)
    if not is_template_usable_by(template, actor.user_id):
        raise NotAuthorizedError("Template is neither owned by you nor public", user_id=actor.user_id)

    return materialize_plan(
        session,
        user_id=actor.user_id,
        template=template,
        weekdays=weekdays,
        weeks_count=weeks_count,
        start_date=start_date,
    )


def get_applied_plan(session: Session, actor: Actor, applied_plan_id: str) -> AppliedWorkoutPlan:
    """Load an applied plan visible to the actor.

    The owning client can always read it; the coach of the originating
    assignment can read coach-assigned plans.
    """
    applied_plan = session.execute(
        select(AppliedWorkoutPlan)
        .where(AppliedWorkoutPlan.id == applied_plan_id)
        .options(selectinload(AppliedWorkoutPlan.scheduled_workouts))
    ).scalar_one_or_none()
    if applied_plan is None:
        raise NotFoundError("AppliedWorkoutPlan", applied_plan_id)
    if applied_plan.user_id == actor.user_id:
        return applied_plan
    if applied_plan.assignment_id is not None:
        assignment = session.get(WorkoutPlanAssignment, applied_plan.assignment_id)
        if assignment is not None and assignment.coach_id == actor.user_id:
            return applied_plan
    raise NotAuthorizedError("Applied plan belongs to another user", user_id=actor.user_id)


def list_applied_plans(session: Session, actor: Actor, *, active_only: bool = False) -> Sequence[AppliedWorkoutPlan]:
    stmt = (
        select(AppliedWorkoutPlan)
        .where(AppliedWorkoutPlan.user_id == actor.user_id)
        .options(selectinload(AppliedWorkoutPlan.scheduled_workouts))
        .order_by(AppliedWorkoutPlan.created_at.desc())
    )
    if active_only:
        stmt = stmt.where(AppliedWorkoutPlan.is_active.is_(True))
    return session.execute(stmt).scalars().all()


def _plan_assignment_id(session: Session, applied_plan_id: str) -> str | None:
    return session.execute(
        select(AppliedWorkoutPlan.assignment_id).where(AppliedWorkoutPlan.id == applied_plan_id)
    ).scalar_one_or_none()


def deactivation_lock_key(session: Session, applied_plan_id: str) -> tuple[str, str]:
    """Aggregate lock to hold while deactivating a plan.

    A coach-assigned plan belongs to its assignment's aggregate, so it is
    locked under the same key as accept and cancel. ``assignment_id`` never
    changes after insert, so reading it before taking the lock is safe.
    """
    assignment_id = _plan_assignment_id(session, applied_plan_id)
    if assignment_id is not None:
        return "assignment", assignment_id
    return "applied_plan", applied_plan_id


def deactivate_applied_plan(session: Session, actor: Actor, applied_plan_id: str) -> AppliedWorkoutPlan:
    """Deactivate an applied plan. Idempotent.

    If the plan came from an assignment that is still running, that
    assignment is cancelled in the same transaction. Rows are locked
    assignment first, then plan, in the same order as cancel.
    """
    assignment = None
    assignment_id = _plan_assignment_id(session, applied_plan_id)
    if assignment_id is not None:
        assignment = load_for_update(session, WorkoutPlanAssignment, assignment_id, "WorkoutPlanAssignment")
    applied_plan = load_for_update(session, AppliedWorkoutPlan, applied_plan_id, "AppliedWorkoutPlan")
    if applied_plan.user_id != actor.user_id:
        raise NotAuthorizedError("Only the plan owner can deactivate it", user_id=actor.user_id)

    if applied_plan.is_active:
        applied_plan.is_active = False
        applied_plan.updated_at = datetime.now(timezone.utc)
        logger.info("Applied workout plan deactivated", applied_plan_id=applied_plan.id, user_id=actor.user_id)

    if assignment is not None and assignment.status in {AssignmentStatus.APPLIED.value, AssignmentStatus.OVERDUE.value}:
        transition(assignment, AssignmentStatus.CANCELLED, "cancel")

    session.flush()
    return applied_plan
