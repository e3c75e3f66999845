from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""


class User(Base):
    """Caller identity resolved to a role.

    Stores:
    - id: User ID (string UUID format)
    - role: "coach" or "client"
    - full_name: Display name (optional)
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True, unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False)  # coach, client
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class CoachClient(Base):
    """Coach-client relationship.

    A coach may only assign plans to clients linked by an active row.
    """

    __tablename__ = "coach_clients"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    coach_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    client_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (UniqueConstraint("coach_id", "client_id", name="uq_coach_client"),)


class WorkoutPlanTemplate(Base):
    """Reusable workout plan (read-only to the engine).

    Daily plans are keyed by symbolic day slots (day1..day7), which are
    unrelated to calendar weekdays. Total calories are derived from children.
    """

    __tablename__ = "workout_plan_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    owner_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")  # draft, published
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    daily_plans: Mapped[list[DailyPlanTemplate]] = relationship(
        back_populates="template",
        order_by="DailyPlanTemplate.day",
        cascade="all, delete-orphan",
    )

    @property
    def total_calories(self) -> float:
        return sum(daily_plan.total_calories for daily_plan in self.daily_plans)


class DailyPlanTemplate(Base):
    """One symbolic day of a template with its ordered exercises."""

    __tablename__ = "daily_plan_templates"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    template_id: Mapped[str] = mapped_column(
        String, ForeignKey("workout_plan_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day: Mapped[str] = mapped_column(String, nullable=False)  # day1..day7
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    template: Mapped[WorkoutPlanTemplate] = relationship(back_populates="daily_plans")
    exercises: Mapped[list[ExerciseSpec]] = relationship(
        back_populates="daily_plan",
        order_by="ExerciseSpec.order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (UniqueConstraint("template_id", "day", name="uq_daily_plan_template_day"),)

    @property
    def total_calories(self) -> float:
        return sum(spec.calorie for spec in self.exercises)

    @property
    def day_display(self) -> str:
        return f"Day {self.day.removeprefix('day')}"


class ExerciseSpec(Base):
    """Prescription of one exercise inside a daily plan."""

    __tablename__ = "exercise_specs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    daily_plan_id: Mapped[str] = mapped_column(
        String, ForeignKey("daily_plan_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    exercise_id: Mapped[int] = mapped_column(Integer, nullable=False)
    exercise_title: Mapped[str] = mapped_column(String, nullable=False)
    set_count: Mapped[int] = mapped_column(Integer, nullable=False)
    reps_count: Mapped[int] = mapped_column(Integer, nullable=False)
    rest_duration_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    calorie: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    daily_plan: Mapped[DailyPlanTemplate] = relationship(back_populates="exercises")

    __table_args__ = (UniqueConstraint("daily_plan_id", "order", name="uq_exercise_spec_order"),)


class WorkoutPlanAssignment(Base):
    """Coach-to-client offer of a template.

    Status lifecycle:
    - assigned -> applied (client accepted, sessions generated)
    - assigned -> rejected (terminal)
    - applied -> completed | overdue | cancelled
    - overdue -> completed | cancelled
    Withdrawal by the coach deletes an assigned row outright.
    """

    __tablename__ = "workout_plan_assignments"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    coach_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    client_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    template_id: Mapped[str] = mapped_column(String, ForeignKey("workout_plan_templates.id"), nullable=False, index=True)

    selected_weekdays: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    weeks_count: Mapped[int] = mapped_column(Integer, nullable=False)
    suggested_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="assigned", index=True)
    applied_plan_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("idx_assignments_client_status", "client_id", "status"),)


class AppliedWorkoutPlan(Base):
    """A template materialized onto one client's calendar.

    Created by accepting an assignment or by self-service apply
    (assignment_id is null for the latter). Owns its scheduled workouts.
    """

    __tablename__ = "applied_workout_plans"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    template_id: Mapped[str] = mapped_column(String, ForeignKey("workout_plan_templates.id"), nullable=False, index=True)
    assignment_id: Mapped[str | None] = mapped_column(
        String, ForeignKey("workout_plan_assignments.id"), nullable=True, unique=True, index=True
    )

    selected_weekdays: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    weeks_count: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    scheduled_workouts: Mapped[list[ScheduledWorkout]] = relationship(
        back_populates="applied_plan",
        order_by="ScheduledWorkout.scheduled_date",
        cascade="all, delete-orphan",
    )


class ScheduledWorkout(Base):
    """One dated occurrence of a daily plan for one client.

    Completion percentage is derived from ExerciseCompletionRecord rows and
    never stored. Unique on (applied_plan_id, scheduled_date, daily_plan_id),
    so regeneration cannot duplicate sessions.
    """

    __tablename__ = "scheduled_workouts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    applied_plan_id: Mapped[str] = mapped_column(
        String, ForeignKey("applied_workout_plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assignment_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    daily_plan_id: Mapped[str] = mapped_column(String, ForeignKey("daily_plan_templates.id"), nullable=False)

    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)

    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    applied_plan: Mapped[AppliedWorkoutPlan] = relationship(back_populates="scheduled_workouts")
    daily_plan: Mapped[DailyPlanTemplate] = relationship()
    completion_records: Mapped[list[ExerciseCompletionRecord]] = relationship(
        back_populates="scheduled_workout",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("applied_plan_id", "scheduled_date", "daily_plan_id", name="uq_scheduled_workout_slot"),
        Index("idx_scheduled_workouts_user_date", "user_id", "scheduled_date"),
    )


class ExerciseCompletionRecord(Base):
    """Per-exercise progress inside one scheduled workout.

    Created lazily on first interaction. Absence means zero progress.
    """

    __tablename__ = "exercise_completion_records"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_uuid, index=True)
    scheduled_workout_id: Mapped[str] = mapped_column(
        String, ForeignKey("scheduled_workouts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    exercise_spec_id: Mapped[str] = mapped_column(String, ForeignKey("exercise_specs.id"), nullable=False)
    completed_sets: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_fully_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    scheduled_workout: Mapped[ScheduledWorkout] = relationship(back_populates="completion_records")
    exercise_spec: Mapped[ExerciseSpec] = relationship()

    __table_args__ = (
        UniqueConstraint("scheduled_workout_id", "exercise_spec_id", name="uq_completion_record_exercise"),
    )
