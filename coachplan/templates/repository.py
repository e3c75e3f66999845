"""Read access to workout plan templates.

Templates are authored elsewhere; the engine only reads them. ``seed_template``
exists to load fixtures (tests, demo data) and is not an authoring API.
"""

from __future__ import annotations

from collections.abc import Sequence

from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from coachplan.core.errors import NotFoundError
from coachplan.db.models import DailyPlanTemplate, ExerciseSpec, WorkoutPlanTemplate


class ExerciseSeed(BaseModel):
    exercise_id: int
    exercise_title: str
    set_count: int = Field(ge=1)
    reps_count: int = Field(ge=0)
    rest_duration_seconds: int = Field(default=60, ge=0)
    calorie: float = Field(default=0.0, ge=0)


class DailyPlanSeed(BaseModel):
    day: str = Field(pattern=r"^day[1-7]$")
    exercises: list[ExerciseSeed] = Field(default_factory=list)


class TemplateSeed(BaseModel):
    title: str
    description: str | None = None
    status: str = "published"
    is_public: bool = False
    daily_plans: list[DailyPlanSeed]


def _with_children():
    return selectinload(WorkoutPlanTemplate.daily_plans).selectinload(DailyPlanTemplate.exercises)


def get_template(session: Session, template_id: str) -> WorkoutPlanTemplate:
    """Load a template with its daily plans and exercise specs.

    Raises:
        NotFoundError: If the template does not exist
    """
    template = session.execute(
        select(WorkoutPlanTemplate).where(WorkoutPlanTemplate.id == template_id).options(_with_children())
    ).scalar_one_or_none()
    if template is None:
        raise NotFoundError("WorkoutPlanTemplate", template_id)
    return template


def is_template_usable_by(template: WorkoutPlanTemplate, user_id: str) -> bool:
    """Own templates are always usable; others only when public and published."""
    if template.owner_id == user_id:
        return True
    return template.is_public and template.status == "published"


def list_assignable_templates(
    session: Session,
    coach_id: str,
    *,
    search: str | None = None,
    include_own: bool = True,
    include_public: bool = True,
) -> Sequence[WorkoutPlanTemplate]:
    """Templates a coach may assign: own templates and public published ones."""
    conditions = []
    if include_own:
        conditions.append(WorkoutPlanTemplate.owner_id == coach_id)
    if include_public:
        conditions.append((WorkoutPlanTemplate.is_public.is_(True)) & (WorkoutPlanTemplate.status == "published"))
    if not conditions:
        return []

    stmt = select(WorkoutPlanTemplate).where(or_(*conditions)).options(_with_children())
    if search:
        stmt = stmt.where(WorkoutPlanTemplate.title.ilike(f"%{search}%"))
    stmt = stmt.order_by(WorkoutPlanTemplate.created_at.desc())
    return session.execute(stmt).scalars().all()


def seed_template(session: Session, owner_id: str, seed: TemplateSeed) -> WorkoutPlanTemplate:
    """Insert a template with its daily plans and exercises.

    Exercise order follows list position within each daily plan.
    """
    template = WorkoutPlanTemplate(
        owner_id=owner_id,
        title=seed.title,
        description=seed.description,
        status=seed.status,
        is_public=seed.is_public,
    )
    for daily_seed in seed.daily_plans:
        daily_plan = DailyPlanTemplate(day=daily_seed.day)
        for order, exercise in enumerate(daily_seed.exercises, start=1):
            daily_plan.exercises.append(ExerciseSpec(order=order, **exercise.model_dump()))
        template.daily_plans.append(daily_plan)
    session.add(template)
    session.flush()
    return template
