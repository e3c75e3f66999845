"""HTTP surface tests: routing, identity resolution and error mapping."""

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from coachplan.core.locks import aggregate_lock
from coachplan.db.models import CoachClient, User
from coachplan.templates.repository import DailyPlanSeed, ExerciseSeed, TemplateSeed, seed_template


@pytest.fixture
def seeded(engine):
    """Commit a coach, two clients (one linked) and a public two-day template."""
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        coach = User(email="coach@api.test", full_name="Coach", role="coach")
        client = User(email="client@api.test", full_name="Client", role="client")
        stranger = User(email="stranger@api.test", full_name="Stranger", role="client")
        session.add_all([coach, client, stranger])
        session.flush()
        session.add(CoachClient(coach_id=coach.id, client_id=client.id, is_active=True))
        template = seed_template(
            session,
            coach.id,
            TemplateSeed(
                title="API Plan",
                is_public=True,
                daily_plans=[
                    DailyPlanSeed(
                        day="day1",
                        exercises=[
                            ExerciseSeed(exercise_id=1, exercise_title="Squat", set_count=3, reps_count=5),
                            ExerciseSeed(exercise_id=2, exercise_title="Press", set_count=2, reps_count=5),
                        ],
                    ),
                    DailyPlanSeed(
                        day="day2",
                        exercises=[ExerciseSeed(exercise_id=3, exercise_title="Row", set_count=3, reps_count=8)],
                    ),
                ],
            ),
        )
        session.commit()
        return SimpleNamespace(coach=coach.id, client=client.id, stranger=stranger.id, template=template.id)
    finally:
        session.close()


@pytest.fixture
def api(engine, monkeypatch):
    import coachplan.db.session as session_module

    monkeypatch.setattr(session_module, "_get_engine", lambda: engine)
    monkeypatch.setattr(session_module, "_SessionLocal", None)

    from coachplan.main import app

    with TestClient(app) as test_client:
        yield test_client


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


def _assignment_body(seeded, **overrides):
    body = {
        "client_id": seeded.client,
        "template_id": seeded.template,
        "selected_weekdays": ["monday", "wednesday"],
        "weeks_count": 2,
        "suggested_start_date": "2024-01-01",
        "due_date": "2024-01-15",
    }
    body.update(overrides)
    return body


ACCEPT_BODY = {"start_date": "2024-01-02", "selected_weekdays": ["monday", "wednesday"], "weeks_count": 2}


@pytest.fixture
def assignment_id(api, seeded):
    response = api.post("/api/assignments", json=_assignment_body(seeded), headers=_as(seeded.coach))
    assert response.status_code == 201
    return response.json()["assignment"]["id"]


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_missing_or_unknown_identity_is_unauthorized(api, seeded):
    assert api.get("/api/assignments").status_code == 401
    assert api.get("/api/assignments", headers=_as("nobody")).status_code == 401


def test_create_assignment(api, seeded):
    response = api.post(
        "/api/assignments",
        json=_assignment_body(seeded, selected_weekdays=["wednesday", "monday"]),
        headers=_as(seeded.coach),
    )

    assert response.status_code == 201
    assignment = response.json()["assignment"]
    assert assignment["status"] == "assigned"
    assert assignment["selected_weekdays"] == ["monday", "wednesday"]


def test_create_assignment_error_mapping(api, seeded):
    forbidden = api.post("/api/assignments", json=_assignment_body(seeded), headers=_as(seeded.client))
    assert forbidden.status_code == 403
    assert forbidden.json()["error"] == "not_authorized"

    unlinked = api.post(
        "/api/assignments",
        json=_assignment_body(seeded, client_id=seeded.stranger),
        headers=_as(seeded.coach),
    )
    assert unlinked.status_code == 403

    invalid = api.post("/api/assignments", json=_assignment_body(seeded, due_date="2024-01-01"), headers=_as(seeded.coach))
    assert invalid.status_code == 422
    body = invalid.json()
    assert body["error"] == "validation_error"
    assert body["details"]["field"] == "due_date"
    assert body["retryable"] is False

    missing = api.post(
        "/api/assignments",
        json=_assignment_body(seeded, template_id="missing"),
        headers=_as(seeded.coach),
    )
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


def test_accept_flow_is_idempotent_and_conflicts_after(api, seeded, assignment_id):
    first = api.post(f"/api/assignments/{assignment_id}/accept", json=ACCEPT_BODY, headers=_as(seeded.client))
    assert first.status_code == 200
    payload = first.json()
    assert payload["assignment"]["status"] == "applied"
    assert [w["scheduled_date"] for w in payload["scheduled_workouts"]] == ["2024-01-03", "2024-01-08", "2024-01-10"]
    assert [w["daily_plan"]["day"] for w in payload["scheduled_workouts"]] == ["day1", "day2", "day1"]
    assert payload["applied_plan"]["scheduled_workouts_count"] == 3

    second = api.post(f"/api/assignments/{assignment_id}/accept", json=ACCEPT_BODY, headers=_as(seeded.client))
    assert second.status_code == 200
    assert [w["id"] for w in second.json()["scheduled_workouts"]] == [w["id"] for w in payload["scheduled_workouts"]]

    conflict = api.post(f"/api/assignments/{assignment_id}/reject", headers=_as(seeded.client))
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "invalid_state_transition"
    assert conflict.json()["details"]["current_status"] == "applied"


def test_withdraw_then_not_found(api, seeded, assignment_id):
    withdrawn = api.post(f"/api/assignments/{assignment_id}/withdraw", headers=_as(seeded.coach))
    assert withdrawn.status_code == 200
    assert withdrawn.json()["assignment"]["id"] == assignment_id

    assert api.get(f"/api/assignments/{assignment_id}", headers=_as(seeded.coach)).status_code == 404


def test_list_assignments_for_each_side(api, seeded, assignment_id):
    coach_view = api.get("/api/assignments", headers=_as(seeded.coach)).json()["assignments"]
    client_view = api.get("/api/assignments?status=assigned", headers=_as(seeded.client)).json()["assignments"]
    stranger_view = api.get("/api/assignments", headers=_as(seeded.stranger)).json()["assignments"]

    assert [a["id"] for a in coach_view] == [assignment_id]
    assert [a["id"] for a in client_view] == [assignment_id]
    assert stranger_view == []


def test_progress_endpoints(api, seeded, assignment_id):
    accepted = api.post(f"/api/assignments/{assignment_id}/accept", json=ACCEPT_BODY, headers=_as(seeded.client)).json()
    workout = accepted["scheduled_workouts"][0]
    squat, press = workout["daily_plan"]["exercises"]
    base = f"/api/scheduled-workouts/{workout['id']}"

    recorded = api.post(f"{base}/exercises/{squat['id']}/complete", json={"completed_sets": 3}, headers=_as(seeded.client))
    assert recorded.status_code == 200
    assert recorded.json()["progress"]["completion_percentage"] == 50.0

    too_many = api.post(f"{base}/exercises/{press['id']}/complete", json={"completed_sets": 5}, headers=_as(seeded.client))
    assert too_many.status_code == 422

    by_coach = api.post(f"{base}/exercises/{press['id']}/complete", json={"completed_sets": 1}, headers=_as(seeded.coach))
    assert by_coach.status_code == 403

    reset = api.post(f"{base}/exercises/{squat['id']}/uncomplete", headers=_as(seeded.client))
    assert reset.json()["progress"]["completion_percentage"] == 0.0

    done = api.post(f"{base}/complete-all", headers=_as(seeded.client))
    assert done.status_code == 200
    assert done.json()["scheduled_workout"]["is_completed"] is True
    assert done.json()["scheduled_workout"]["completion_percentage"] == 100.0

    coach_read = api.get(f"{base}/progress", headers=_as(seeded.coach))
    assert coach_read.status_code == 200
    assert coach_read.json()["progress"]["completed_exercises_count"] == 2

    completed = api.get("/api/scheduled-workouts?completed=true", headers=_as(seeded.client)).json()
    assert [w["id"] for w in completed["scheduled_workouts"]] == [workout["id"]]
    in_range = api.get(
        "/api/scheduled-workouts?date_from=2024-01-04&date_to=2024-01-09", headers=_as(seeded.client)
    ).json()
    assert [w["scheduled_date"] for w in in_range["scheduled_workouts"]] == ["2024-01-08"]


def test_coach_lifecycle_endpoints(api, seeded, assignment_id):
    api.post(f"/api/assignments/{assignment_id}/accept", json=ACCEPT_BODY, headers=_as(seeded.client))

    swept = api.post("/api/assignments/sweep-overdue?today=2024-01-16", headers=_as(seeded.coach))
    assert swept.status_code == 200
    assert [a["status"] for a in swept.json()["assignments"]] == ["overdue"]

    assert api.post("/api/assignments/sweep-overdue", headers=_as(seeded.client)).status_code == 403

    cancelled = api.post(f"/api/assignments/{assignment_id}/cancel", headers=_as(seeded.coach))
    assert cancelled.json()["assignment"]["status"] == "cancelled"

    plan_id = cancelled.json()["assignment"]["applied_plan_id"]
    plan = api.get(f"/api/applied-plans/{plan_id}", headers=_as(seeded.client)).json()["applied_plan"]
    assert plan["is_active"] is False


def test_assignable_templates(api, seeded):
    response = api.get(f"/api/templates/assignable/{seeded.client}", headers=_as(seeded.coach))
    assert response.status_code == 200
    templates = response.json()["templates"]
    assert [t["id"] for t in templates] == [seeded.template]
    assert templates[0]["is_own_plan"] is True
    assert templates[0]["daily_plans_count"] == 2

    assert api.get(f"/api/templates/assignable/{seeded.stranger}", headers=_as(seeded.coach)).status_code == 403
    assert api.get(f"/api/templates/assignable/{seeded.client}", headers=_as(seeded.client)).status_code == 403


def test_self_applied_plan_lifecycle(api, seeded):
    created = api.post(
        "/api/applied-plans",
        json={"template_id": seeded.template, "selected_weekdays": ["friday"], "weeks_count": 2, "start_date": "2024-01-01"},
        headers=_as(seeded.stranger),
    )
    assert created.status_code == 201
    plan = created.json()["applied_plan"]
    assert plan["assignment_id"] is None
    assert len(created.json()["scheduled_workouts"]) == 2

    listed = api.get("/api/applied-plans?active_only=true", headers=_as(seeded.stranger)).json()["applied_plans"]
    assert [p["id"] for p in listed] == [plan["id"]]

    deactivated = api.post(f"/api/applied-plans/{plan['id']}/deactivate", headers=_as(seeded.stranger))
    assert deactivated.status_code == 200
    assert deactivated.json()["applied_plan"]["is_active"] is False

    assert api.get(f"/api/applied-plans/{plan['id']}", headers=_as(seeded.client)).status_code == 403


@pytest.fixture
def short_lock_timeout(monkeypatch):
    from coachplan.config.settings import settings

    monkeypatch.setattr(settings, "lock_timeout_seconds", 0.05)


def test_sweep_waits_for_the_assignment_lock(api, seeded, assignment_id, short_lock_timeout):
    api.post(f"/api/assignments/{assignment_id}/accept", json=ACCEPT_BODY, headers=_as(seeded.client))

    with aggregate_lock("assignment", assignment_id):
        busy = api.post("/api/assignments/sweep-overdue?today=2024-01-16", headers=_as(seeded.coach))
    assert busy.status_code == 409
    assert busy.json()["error"] == "aggregate_busy"
    assert busy.json()["retryable"] is True
    assert api.get(f"/api/assignments/{assignment_id}", headers=_as(seeded.coach)).json()["assignment"]["status"] == "applied"

    swept = api.post("/api/assignments/sweep-overdue?today=2024-01-16", headers=_as(seeded.coach))
    assert [a["status"] for a in swept.json()["assignments"]] == ["overdue"]


def test_deactivating_assigned_plan_takes_the_assignment_lock(api, seeded, assignment_id, short_lock_timeout):
    accepted = api.post(f"/api/assignments/{assignment_id}/accept", json=ACCEPT_BODY, headers=_as(seeded.client)).json()
    plan_id = accepted["applied_plan"]["id"]

    with aggregate_lock("assignment", assignment_id):
        busy = api.post(f"/api/applied-plans/{plan_id}/deactivate", headers=_as(seeded.client))
    assert busy.status_code == 409

    deactivated = api.post(f"/api/applied-plans/{plan_id}/deactivate", headers=_as(seeded.client))
    assert deactivated.json()["applied_plan"]["is_active"] is False
    cancelled = api.get(f"/api/assignments/{assignment_id}", headers=_as(seeded.client)).json()["assignment"]
    assert cancelled["status"] == "cancelled"
