"""Map typed domain failures onto HTTP responses."""
from __future__ import annotations

from fastapi import HTTPException, status

from lauf.domain.common.errors import (
    ComponentNotInSnapshotError,
    DomainError,
    NotFoundError,
    ValidationError,
)
from lauf.domain.common.result import Result, T


def status_for(error: DomainError) -> int:
    if isinstance(error, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (ValidationError, ComponentNotInSnapshotError)):
        return status.HTTP_400_BAD_REQUEST
    # version immutability, state machine and concurrency failures
    return status.HTTP_409_CONFLICT


def unwrap_or_raise(result: Result[T]) -> T:
    if not result.is_success:
        raise HTTPException(status_code=status_for(result.error), detail=result.error.to_dict())
    return result.value
