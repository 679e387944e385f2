# backend/app/errors.py
from __future__ import annotations

from typing import Any, Optional


class SchedulingError(Exception):
    """Base for every error the scheduling core raises to its callers."""

    code = "scheduling_error"
    http_status = 400

    def __init__(self, detail: str, **context: Any) -> None:
        super().__init__(detail)
        self.detail = detail
        self.context = context

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.code, "detail": self.detail}
        out.update({k: v for k, v in self.context.items() if v is not None})
        return out


class ValidationError(SchedulingError):
    """Missing or malformed input (date/time/inspector, end <= start, empty reasons)."""

    code = "validation_error"
    http_status = 422


class InvalidTransitionError(ValidationError):
    """The requested move is not an edge of the inspection state machine."""

    code = "invalid_transition"
    http_status = 409

    def __init__(self, entity: str, current: str, target: str, detail: Optional[str] = None) -> None:
        super().__init__(
            detail or f"{entity} cannot move from {current} to {target}",
            entity=entity,
            current=current,
            target=target,
        )
        self.current = current
        self.target = target


class SchedulingConflict(SchedulingError):
    """The availability resolver refused the inspector/interval pair."""

    code = "scheduling_conflict"
    http_status = 409

    def __init__(
        self,
        detail: str,
        *,
        reason: str,
        inspector_id: Optional[str] = None,
        conflicting_inspection_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            detail,
            reason=reason,
            inspector_id=inspector_id,
            conflicting_inspection_id=conflicting_inspection_id,
        )
        self.reason = reason
        self.conflicting_inspection_id = conflicting_inspection_id


class NotFoundError(SchedulingError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found", entity=entity, id=str(entity_id))
        self.entity = entity
        self.entity_id = str(entity_id)


class PersistenceError(SchedulingError):
    """Store write failed (after bounded retry for transient failures)."""

    code = "persistence_error"
    http_status = 503
