"""Root conftest for all tests.

Shared fixtures: an in-memory SQLite database per test, demo users and a
three-day template.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coachplan.core.permissions import Actor
from coachplan.db.models import Base, CoachClient, User
from coachplan.db.session import configure_sqlite
from coachplan.templates.repository import DailyPlanSeed, ExerciseSeed, TemplateSeed, seed_template


def make_template_seed(title: str = "Strength Block", *, is_public: bool = False, status: str = "published") -> TemplateSeed:
    return TemplateSeed(
        title=title,
        description="Three-day split",
        status=status,
        is_public=is_public,
        daily_plans=[
            DailyPlanSeed(
                day="day1",
                exercises=[
                    ExerciseSeed(exercise_id=1, exercise_title="Squat", set_count=3, reps_count=8, calorie=40),
                    ExerciseSeed(exercise_id=2, exercise_title="Bench Press", set_count=3, reps_count=8, calorie=35),
                    ExerciseSeed(exercise_id=3, exercise_title="Row", set_count=3, reps_count=10, calorie=30),
                ],
            ),
            DailyPlanSeed(
                day="day2",
                exercises=[
                    ExerciseSeed(exercise_id=4, exercise_title="Deadlift", set_count=5, reps_count=5, calorie=60),
                    ExerciseSeed(exercise_id=5, exercise_title="Pull-up", set_count=4, reps_count=6, calorie=25),
                ],
            ),
            DailyPlanSeed(
                day="day3",
                exercises=[
                    ExerciseSeed(exercise_id=6, exercise_title="Lunge", set_count=2, reps_count=12, calorie=30),
                ],
            ),
        ],
    )


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    """
    Provides a transactional in-memory SQLite DB session for tests.

    Everything a test writes is rolled back at the end; services only flush,
    so tests can read their effects through the same session.
    """
    connection = engine.connect()
    transaction = connection.begin()
    session = sessionmaker(bind=connection, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        if transaction.is_active:
            transaction.rollback()
        connection.close()


def _add_user(session, email: str, role: str) -> User:
    user = User(email=email, full_name=email.split("@")[0].title(), role=role)
    session.add(user)
    session.flush()
    return user


@pytest.fixture
def coach_user(db_session) -> User:
    return _add_user(db_session, "coach@example.com", "coach")


@pytest.fixture
def client_user(db_session) -> User:
    return _add_user(db_session, "client@example.com", "client")


@pytest.fixture
def other_coach_user(db_session) -> User:
    return _add_user(db_session, "other.coach@example.com", "coach")


@pytest.fixture
def other_client_user(db_session) -> User:
    return _add_user(db_session, "other.client@example.com", "client")


@pytest.fixture
def coach(coach_user) -> Actor:
    return Actor(user_id=coach_user.id, role="coach")


@pytest.fixture
def client(client_user) -> Actor:
    return Actor(user_id=client_user.id, role="client")


@pytest.fixture
def other_coach(other_coach_user) -> Actor:
    return Actor(user_id=other_coach_user.id, role="coach")


@pytest.fixture
def other_client(other_client_user) -> Actor:
    return Actor(user_id=other_client_user.id, role="client")


@pytest.fixture
def coach_client_link(db_session, coach_user, client_user) -> CoachClient:
    link = CoachClient(coach_id=coach_user.id, client_id=client_user.id, is_active=True)
    db_session.add(link)
    db_session.flush()
    return link


@pytest.fixture
def template(db_session, coach_user):
    """Coach-owned, private, published template with day1..day3."""
    return seed_template(db_session, coach_user.id, make_template_seed())


@pytest.fixture
def make_template(db_session):
    """Factory seeding a three-day template for any owner."""

    def _make(owner_id: str, title: str = "Strength Block", *, is_public: bool = False, status: str = "published"):
        return seed_template(db_session, owner_id, make_template_seed(title, is_public=is_public, status=status))

    return _make
