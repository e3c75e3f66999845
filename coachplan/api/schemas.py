"""Request and response models for the HTTP surface.

Responses are built while the database session is still open, since they
read relationships (daily plan exercises, completion records).
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from coachplan.db.models import (
    AppliedWorkoutPlan,
    DailyPlanTemplate,
    ExerciseSpec,
    ScheduledWorkout,
    WorkoutPlanAssignment,
    WorkoutPlanTemplate,
)
from coachplan.tracking.progress import WorkoutProgress, build_progress

if TYPE_CHECKING:
    from coachplan.assignments.service import AssignmentSnapshot


class ExerciseSpecResponse(BaseModel):
    id: str
    exercise_id: int
    exercise_title: str
    set_count: int
    reps_count: int
    rest_duration_seconds: int
    calorie: float
    order: int

    @classmethod
    def from_model(cls, spec: ExerciseSpec) -> ExerciseSpecResponse:
        return cls(
            id=spec.id,
            exercise_id=spec.exercise_id,
            exercise_title=spec.exercise_title,
            set_count=spec.set_count,
            reps_count=spec.reps_count,
            rest_duration_seconds=spec.rest_duration_seconds,
            calorie=spec.calorie,
            order=spec.order,
        )


class DailyPlanResponse(BaseModel):
    id: str
    day: str
    day_display: str
    total_calories: float
    exercises: list[ExerciseSpecResponse]

    @classmethod
    def from_model(cls, daily_plan: DailyPlanTemplate) -> DailyPlanResponse:
        return cls(
            id=daily_plan.id,
            day=daily_plan.day,
            day_display=daily_plan.day_display,
            total_calories=daily_plan.total_calories,
            exercises=[ExerciseSpecResponse.from_model(spec) for spec in daily_plan.exercises],
        )


class TemplateSummaryResponse(BaseModel):
    id: str
    title: str
    description: str | None
    owner_id: str
    is_own_plan: bool
    is_public: bool
    status: str
    total_calories: float
    daily_plans_count: int
    created_at: datetime

    @classmethod
    def from_model(cls, template: WorkoutPlanTemplate, viewer_id: str) -> TemplateSummaryResponse:
        return cls(
            id=template.id,
            title=template.title,
            description=template.description,
            owner_id=template.owner_id,
            is_own_plan=template.owner_id == viewer_id,
            is_public=template.is_public,
            status=template.status,
            total_calories=template.total_calories,
            daily_plans_count=len(template.daily_plans),
            created_at=template.created_at,
        )


class AssignmentResponse(BaseModel):
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

    @classmethod
    def from_model(cls, assignment: WorkoutPlanAssignment | AssignmentSnapshot) -> AssignmentResponse:
        return cls(
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


class ScheduledWorkoutResponse(BaseModel):
    id: str
    applied_plan_id: str
    assignment_id: str | None
    scheduled_date: date
    week_number: int
    is_completed: bool
    completed_at: datetime | None
    completion_percentage: float
    total_exercises: int
    completed_exercises_count: int
    daily_plan: DailyPlanResponse

    @classmethod
    def from_model(cls, workout: ScheduledWorkout) -> ScheduledWorkoutResponse:
        progress = build_progress(workout)
        return cls(
            id=workout.id,
            applied_plan_id=workout.applied_plan_id,
            assignment_id=workout.assignment_id,
            scheduled_date=workout.scheduled_date,
            week_number=workout.week_number,
            is_completed=workout.is_completed,
            completed_at=workout.completed_at,
            completion_percentage=progress.completion_percentage,
            total_exercises=progress.total_exercises,
            completed_exercises_count=progress.completed_exercises_count,
            daily_plan=DailyPlanResponse.from_model(workout.daily_plan),
        )


class AppliedPlanResponse(BaseModel):
    id: str
    user_id: str
    template_id: str
    assignment_id: str | None
    selected_weekdays: list[str]
    weeks_count: int
    start_date: date
    end_date: date
    is_active: bool
    scheduled_workouts_count: int
    completed_workouts_count: int
    created_at: datetime

    @classmethod
    def from_model(cls, applied_plan: AppliedWorkoutPlan, workouts: list[ScheduledWorkout]) -> AppliedPlanResponse:
        return cls(
            id=applied_plan.id,
            user_id=applied_plan.user_id,
            template_id=applied_plan.template_id,
            assignment_id=applied_plan.assignment_id,
            selected_weekdays=list(applied_plan.selected_weekdays),
            weeks_count=applied_plan.weeks_count,
            start_date=applied_plan.start_date,
            end_date=applied_plan.end_date,
            is_active=applied_plan.is_active,
            scheduled_workouts_count=len(workouts),
            completed_workouts_count=sum(1 for workout in workouts if workout.is_completed),
            created_at=applied_plan.created_at,
        )


# Envelopes


class AssignmentEnvelope(BaseModel):
    message: str
    assignment: AssignmentResponse


class AssignmentsEnvelope(BaseModel):
    message: str
    assignments: list[AssignmentResponse]


class AcceptEnvelope(BaseModel):
    message: str
    assignment: AssignmentResponse
    applied_plan: AppliedPlanResponse
    scheduled_workouts: list[ScheduledWorkoutResponse]


class AppliedPlanEnvelope(BaseModel):
    message: str
    applied_plan: AppliedPlanResponse
    scheduled_workouts: list[ScheduledWorkoutResponse] = Field(default_factory=list)


class AppliedPlansEnvelope(BaseModel):
    message: str
    applied_plans: list[AppliedPlanResponse]


class ScheduledWorkoutEnvelope(BaseModel):
    message: str
    scheduled_workout: ScheduledWorkoutResponse


class ScheduledWorkoutsEnvelope(BaseModel):
    message: str
    scheduled_workouts: list[ScheduledWorkoutResponse]


class ProgressEnvelope(BaseModel):
    message: str
    progress: WorkoutProgress


class TemplatesEnvelope(BaseModel):
    message: str
    templates: list[TemplateSummaryResponse]


# Request bodies


class ApplyPlanBody(BaseModel):
    template_id: str
    selected_weekdays: list[str]
    weeks_count: int
    start_date: date


class RecordProgressBody(BaseModel):
    completed_sets: int
    notes: str | None = Field(default=None, max_length=2000)
