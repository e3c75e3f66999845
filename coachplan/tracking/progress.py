"""Completion math for scheduled workouts.

Percentages are always recomputed from ExerciseCompletionRecord rows; nothing
here reads a cached value.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime

from pydantic import BaseModel

from coachplan.db.models import ExerciseCompletionRecord, ExerciseSpec, ScheduledWorkout


class ExerciseProgress(BaseModel):
    """Progress on one exercise. ``record_id`` is None for untouched exercises."""

    record_id: str | None
    exercise_spec_id: str
    exercise_title: str
    order: int
    completed_sets: int
    total_sets: int
    is_fully_completed: bool
    notes: str | None = None
    completed_at: datetime | None = None


class WorkoutProgress(BaseModel):
    scheduled_workout_id: str
    completion_percentage: float
    is_completed: bool
    total_exercises: int
    completed_exercises_count: int
    exercises: list[ExerciseProgress]


def completion_percentage(fully_completed: int, total: int, *, is_completed: bool = False) -> float:
    """Share of fully completed exercises, 0..100 rounded to 2 decimals.

    A daily plan without exercises reports 100 once the workout was
    completed in bulk, 0 otherwise.
    """
    if total == 0:
        return 100.0 if is_completed else 0.0
    return round(100.0 * fully_completed / total, 2)


def records_by_spec(records: Iterable[ExerciseCompletionRecord]) -> dict[str, ExerciseCompletionRecord]:
    return {record.exercise_spec_id: record for record in records}


def count_fully_completed(specs: Sequence[ExerciseSpec], records: dict[str, ExerciseCompletionRecord]) -> int:
    return sum(1 for spec in specs if spec.id in records and records[spec.id].is_fully_completed)


def derive_is_completed(specs: Sequence[ExerciseSpec], records: dict[str, ExerciseCompletionRecord]) -> bool:
    """True iff the plan has exercises and every one has a fully completed record."""
    return bool(specs) and count_fully_completed(specs, records) == len(specs)


def build_progress(workout: ScheduledWorkout) -> WorkoutProgress:
    specs = list(workout.daily_plan.exercises)
    records = records_by_spec(workout.completion_records)

    exercises: list[ExerciseProgress] = []
    for spec in specs:
        record = records.get(spec.id)
        exercises.append(
            ExerciseProgress(
                record_id=record.id if record else None,
                exercise_spec_id=spec.id,
                exercise_title=spec.exercise_title,
                order=spec.order,
                completed_sets=record.completed_sets if record else 0,
                total_sets=spec.set_count,
                is_fully_completed=record.is_fully_completed if record else False,
                notes=record.notes if record else None,
                completed_at=record.completed_at if record else None,
            )
        )

    fully_completed = count_fully_completed(specs, records)
    return WorkoutProgress(
        scheduled_workout_id=workout.id,
        completion_percentage=completion_percentage(fully_completed, len(specs), is_completed=workout.is_completed),
        is_completed=workout.is_completed,
        total_exercises=len(specs),
        completed_exercises_count=fully_completed,
        exercises=exercises,
    )
