"""Business rules for assignments — validation, deadlines and the assignment lifecycle."""
from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from lauf.domain.assignments.models import AssignmentStatus
from lauf.domain.common.errors import InvalidTransitionError, ValidationError
from lauf.domain.common.result import Result

# Monday=0 ... Friday=4
DEFAULT_WORKING_DAYS = frozenset(range(5))

# Manual lifecycle moves; Completed is only reached through progress
ALLOWED_TRANSITIONS: dict[AssignmentStatus, set[AssignmentStatus]] = {
    AssignmentStatus.ASSIGNED: {AssignmentStatus.IN_PROGRESS, AssignmentStatus.CANCELLED},
    AssignmentStatus.IN_PROGRESS: {AssignmentStatus.PAUSED, AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED},
    AssignmentStatus.PAUSED: {AssignmentStatus.IN_PROGRESS, AssignmentStatus.CANCELLED},
    AssignmentStatus.COMPLETED: set(),
    AssignmentStatus.CANCELLED: set(),
}


def validate_assignment_request(
    user_id: str,
    buddy_id: Optional[str],
    deadline: Optional[datetime],
    now: datetime,
) -> Result[None]:
    """Structural checks that must pass before the store is touched."""
    if not user_id:
        return Result.fail(ValidationError("user_id is required.", field="user_id"))
    if buddy_id is not None and buddy_id == user_id:
        return Result.fail(ValidationError("A buddy must be a different user than the assignee.", field="buddy_id"))
    if deadline is not None:
        if deadline.tzinfo is None:
            return Result.fail(ValidationError("deadline must be timezone-aware.", field="deadline"))
        if deadline <= now:
            return Result.fail(ValidationError("deadline must be in the future.", field="deadline"))
    return Result.ok(None)


def validate_status_transition(current: AssignmentStatus, new: AssignmentStatus) -> Result[AssignmentStatus]:
    if new not in ALLOWED_TRANSITIONS[current]:
        return Result.fail(InvalidTransitionError(
            f"Assignment cannot move from '{current.value}' to '{new.value}'.",
            current=current.value,
            attempted=new.value,
        ))
    return Result.ok(new)


def add_working_days(
    start: datetime,
    working_days: int,
    weekdays: Iterable[int] = DEFAULT_WORKING_DAYS,
    holidays: Iterable[date] = (),
) -> datetime:
    """
    Deadline ``working_days`` working days after ``start``.

    The start day itself never counts; weekends (per ``weekdays``) and
    ``holidays`` are skipped.
    """
    if working_days <= 0:
        raise ValueError("working_days must be positive")
    weekdays = set(weekdays)
    holidays = set(holidays)
    current = start
    remaining = working_days
    while remaining > 0:
        current = current + timedelta(days=1)
        if current.weekday() in weekdays and current.date() not in holidays:
            remaining -= 1
    return current
