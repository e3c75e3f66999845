from datetime import date

import pytest
from sqlalchemy import func, select

from coachplan.applied.service import (
    apply_plan,
    deactivate_applied_plan,
    deactivation_lock_key,
    get_applied_plan,
    list_applied_plans,
    persist_drafts,
)
from coachplan.assignments.service import accept_assignment, create_assignment
from coachplan.assignments.types import AcceptAssignmentRequest, AssignmentStatus, CreateAssignmentRequest
from coachplan.core.errors import NotAuthorizedError, NotFoundError, ValidationError
from coachplan.db.models import ScheduledWorkout
from coachplan.schedule.generator import generate_schedule
from coachplan.tracking.service import get_progress, get_scheduled_workout

MONDAY = date(2024, 1, 1)


@pytest.fixture
def public_template(make_template, coach_user):
    return make_template(coach_user.id, "Open Program", is_public=True)


@pytest.fixture
def accepted(db_session, coach, client, client_user, template, coach_client_link):
    assignment = create_assignment(
        db_session,
        coach,
        CreateAssignmentRequest(
            client_id=client_user.id,
            template_id=template.id,
            selected_weekdays=["tuesday", "thursday"],
            weeks_count=2,
            suggested_start_date=MONDAY,
            due_date=date(2024, 1, 20),
        ),
    )
    return accept_assignment(
        db_session,
        client,
        assignment.id,
        AcceptAssignmentRequest(start_date=MONDAY, selected_weekdays=["tuesday", "thursday"], weeks_count=2),
    )


def test_client_applies_public_template(db_session, client, client_user, public_template):
    applied_plan, workouts = apply_plan(
        db_session,
        client,
        template_id=public_template.id,
        selected_weekdays=["saturday", "tuesday"],
        weeks_count=3,
        start_date=MONDAY,
    )

    assert applied_plan.assignment_id is None
    assert applied_plan.user_id == client_user.id
    assert applied_plan.selected_weekdays == ["tuesday", "saturday"]
    assert len(workouts) == 6
    assert applied_plan.end_date == workouts[-1].scheduled_date
    assert all(w.assignment_id is None for w in workouts)


def test_client_cannot_apply_private_template_of_coach(db_session, client, template):
    with pytest.raises(NotAuthorizedError):
        apply_plan(db_session, client, template_id=template.id, selected_weekdays=["monday"], weeks_count=1, start_date=MONDAY)


def test_coach_cannot_self_apply(db_session, coach, template):
    with pytest.raises(NotAuthorizedError):
        apply_plan(db_session, coach, template_id=template.id, selected_weekdays=["monday"], weeks_count=1, start_date=MONDAY)


def test_apply_validates_schedule_parameters(db_session, client, public_template):
    with pytest.raises(ValidationError):
        apply_plan(db_session, client, template_id=public_template.id, selected_weekdays=[], weeks_count=1, start_date=MONDAY)
    with pytest.raises(ValidationError):
        apply_plan(
            db_session, client, template_id=public_template.id, selected_weekdays=["monday"], weeks_count=60, start_date=MONDAY
        )


def test_persist_drafts_never_duplicates_sessions(db_session, accepted, template):
    applied_plan = accepted.applied_plan
    drafts = generate_schedule(template, ["tuesday", "thursday"], 2, MONDAY)

    workouts = persist_drafts(db_session, applied_plan, drafts)

    assert [w.id for w in workouts] == [w.id for w in accepted.scheduled_workouts]
    count = db_session.execute(
        select(func.count()).select_from(ScheduledWorkout).where(ScheduledWorkout.applied_plan_id == applied_plan.id)
    ).scalar_one()
    assert count == 4


def test_assignment_coach_can_read_plan_and_progress(db_session, coach, other_coach, accepted):
    applied_plan = get_applied_plan(db_session, coach, accepted.applied_plan.id)
    workout = accepted.scheduled_workouts[0]

    assert len(applied_plan.scheduled_workouts) == 4
    assert get_scheduled_workout(db_session, coach, workout.id).id == workout.id
    assert get_progress(db_session, coach, workout.id).completion_percentage == 0.0

    with pytest.raises(NotAuthorizedError):
        get_applied_plan(db_session, other_coach, accepted.applied_plan.id)


def test_get_unknown_applied_plan(db_session, client):
    with pytest.raises(NotFoundError):
        get_applied_plan(db_session, client, "missing")


def test_deactivate_cancels_running_assignment_and_is_idempotent(db_session, client, accepted):
    plan_id = accepted.applied_plan.id

    deactivated = deactivate_applied_plan(db_session, client, plan_id)
    assert deactivated.is_active is False
    assert accepted.assignment.status == AssignmentStatus.CANCELLED.value

    again = deactivate_applied_plan(db_session, client, plan_id)
    assert again.is_active is False
    assert accepted.assignment.status == AssignmentStatus.CANCELLED.value


def test_only_owner_can_deactivate(db_session, coach, accepted):
    with pytest.raises(NotAuthorizedError):
        deactivate_applied_plan(db_session, coach, accepted.applied_plan.id)
    assert accepted.applied_plan.is_active is True


def test_list_applied_plans_active_only(db_session, client, other_client, accepted, public_template):
    self_applied, _ = apply_plan(
        db_session, client, template_id=public_template.id, selected_weekdays=["friday"], weeks_count=1, start_date=MONDAY
    )
    deactivate_applied_plan(db_session, client, accepted.applied_plan.id)

    assert {p.id for p in list_applied_plans(db_session, client)} == {self_applied.id, accepted.applied_plan.id}
    assert [p.id for p in list_applied_plans(db_session, client, active_only=True)] == [self_applied.id]
    assert list_applied_plans(db_session, other_client) == []


def test_deactivation_lock_key_follows_the_owning_aggregate(db_session, client, accepted, public_template):
    self_applied, _ = apply_plan(
        db_session, client, template_id=public_template.id, selected_weekdays=["friday"], weeks_count=1, start_date=MONDAY
    )

    assert deactivation_lock_key(db_session, accepted.applied_plan.id) == ("assignment", accepted.assignment.id)
    assert deactivation_lock_key(db_session, self_applied.id) == ("applied_plan", self_applied.id)
    assert deactivation_lock_key(db_session, "missing") == ("applied_plan", "missing")
