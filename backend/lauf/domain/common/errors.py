"""Typed domain failures.

Every error here is recoverable by the caller: application services hand them
back inside ``Result.fail(...)`` and the API layer maps them to HTTP statuses.
Each carries enough context (entity, id, attempted transition) to build a
user-facing message.
"""
from __future__ import annotations
from typing import Optional


class DomainError(Exception):
    """Base class for all domain-specific failures."""

    code = "domain_error"

    def __init__(self, message: str, **context) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.context}


class ValidationError(DomainError):
    """Caller-supplied data violates a structural invariant."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None, **context) -> None:
        super().__init__(message, field=field, **context)
        self.field = field


class NotFoundError(DomainError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"{entity} '{entity_id}' not found.", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class VersionNotFoundError(NotFoundError):
    code = "version_not_found"


class NoActiveVersionError(NotFoundError):
    code = "no_active_version"

    def __init__(self, entity: str, original_id: str) -> None:
        super().__init__(entity, original_id, f"{entity} '{original_id}' has no active version.")


class AssignmentNotFoundError(NotFoundError):
    code = "assignment_not_found"

    def __init__(self, assignment_id: str) -> None:
        super().__init__("FlowAssignment", assignment_id)


class ImmutableVersionError(DomainError):
    """Mutation attempted on a version that is, or once was, active."""

    code = "immutable_version"

    def __init__(self, entity: str, version_id: str) -> None:
        super().__init__(
            f"{entity} version '{version_id}' has been activated and can no longer be edited.",
            entity=entity,
            entity_id=version_id,
        )


class ConcurrentActivationError(DomainError):
    code = "concurrent_activation"

    def __init__(self, entity: str, original_id: str) -> None:
        super().__init__(
            f"Another activation of {entity} '{original_id}' completed first.",
            entity=entity,
            entity_id=original_id,
        )


class ConcurrentModificationError(DomainError):
    code = "concurrent_modification"

    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(
            f"{entity} '{entity_id}' was modified concurrently. Reload and try again.",
            entity=entity,
            entity_id=entity_id,
        )


class InvalidTransitionError(DomainError):
    code = "invalid_transition"

    def __init__(self, message: str, current: Optional[str] = None, attempted: Optional[str] = None) -> None:
        super().__init__(message, current=current, attempted=attempted)
        self.current = current
        self.attempted = attempted


class ComponentNotInSnapshotError(DomainError):
    code = "component_not_in_snapshot"

    def __init__(self, component_id: str, flow_version_id: str) -> None:
        super().__init__(
            f"Component '{component_id}' is not part of flow version '{flow_version_id}'.",
            entity_id=component_id,
            flow_version_id=flow_version_id,
        )


class StepLockedError(DomainError):
    code = "step_locked"

    def __init__(self, step_id: str, order: int) -> None:
        super().__init__(
            f"Step {order} is locked until the previous steps are completed.",
            entity_id=step_id,
            order=order,
        )


class StaleInteractionError(DomainError):
    code = "stale_interaction"

    def __init__(self, message: str, entity_id: str, attempted: Optional[str] = None) -> None:
        super().__init__(message, entity_id=entity_id, attempted=attempted)


class DuplicateAssignmentError(DomainError):
    code = "duplicate_assignment"

    def __init__(self, user_id: str, flow_id: str, existing_id: str) -> None:
        super().__init__(
            f"User '{user_id}' already has an open assignment '{existing_id}' for flow '{flow_id}'.",
            user_id=user_id,
            flow_id=flow_id,
            entity_id=existing_id,
        )


class OperationCancelledError(DomainError):
    code = "cancelled"

    def __init__(self, operation: str) -> None:
        super().__init__(f"Operation '{operation}' was cancelled before commit.", operation=operation)
