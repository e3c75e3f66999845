"""Error taxonomy for the assignment and tracking engine.

Every error carries a stable ``code`` and a ``details`` dict naming the
constraint that failed, so callers can render an actionable message.
Services raise these; the API layer maps them to HTTP responses.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base exception for all engine errors."""

    code = "engine_error"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(EngineError):
    """Raised for malformed or out-of-range input. Never retried automatically."""

    code = "validation_error"

    def __init__(self, field: str, message: str, **details: Any):
        self.field = field
        super().__init__(message, {"field": field, **details})


class NotAuthorizedError(EngineError):
    """Raised when the caller's role or relationship does not permit the operation."""

    code = "not_authorized"

    def __init__(self, message: str, *, user_id: str | None = None, required_role: str | None = None):
        self.user_id = user_id
        self.required_role = required_role
        details: dict[str, Any] = {}
        if user_id is not None:
            details["user_id"] = user_id
        if required_role is not None:
            details["required_role"] = required_role
        super().__init__(message, details)


class InvalidStateTransitionError(EngineError):
    """Raised when an operation is attempted from a state that does not allow it.

    The caller's view is stale; it should refetch and re-decide, not retry.
    """

    code = "invalid_state_transition"

    def __init__(self, entity: str, entity_id: str, current: str, attempted: str, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted
        super().__init__(
            message or f"Cannot {attempted} {entity} {entity_id} in status '{current}'",
            {"entity": entity, "entity_id": entity_id, "current_status": current, "attempted": attempted},
        )


class NotFoundError(EngineError):
    """Raised when an id does not resolve to an entity."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any, message: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity} {entity_id} not found",
            {"entity": entity, "entity_id": str(entity_id)},
        )


class PartialFailureError(EngineError):
    """Raised when a bulk operation failed part-way and was rolled back.

    The bulk operations are idempotent, so the caller may retry the whole call.
    """

    code = "partial_failure"
    retryable = True

    def __init__(self, operation: str, failed_ids: list[str], message: str | None = None):
        self.operation = operation
        self.failed_ids = failed_ids
        super().__init__(
            message or f"{operation} failed for {len(failed_ids)} item(s); all changes were rolled back",
            {"operation": operation, "failed_ids": failed_ids},
        )


class InvalidScheduleInputError(EngineError):
    """Raised when the schedule generator contract is violated (a caller bug)."""

    code = "invalid_schedule_input"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message, {"field": field})


class ProgressInvariantError(EngineError):
    """Raised when a stored completion flag disagrees with its exercise records.

    This is a defect, not a runtime condition to recover from.
    """

    code = "progress_invariant_violation"

    def __init__(self, scheduled_workout_id: str, stored: bool, derived: bool):
        self.scheduled_workout_id = scheduled_workout_id
        super().__init__(
            f"ScheduledWorkout {scheduled_workout_id} stored is_completed={stored} but records derive {derived}",
            {"scheduled_workout_id": scheduled_workout_id, "stored": stored, "derived": derived},
        )
