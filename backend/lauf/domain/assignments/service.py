"""Domain service — pure business logic for binding users to flow snapshots."""
from __future__ import annotations
from datetime import datetime
from typing import Iterable, Optional

from lauf.domain.assignments.models import AssignmentStatus, FlowAssignment
from lauf.domain.assignments.rules import add_working_days, validate_assignment_request, validate_status_transition
from lauf.domain.common.errors import DuplicateAssignmentError, NoActiveVersionError
from lauf.domain.common.result import Result
from lauf.domain.events import AssignmentCancelled, FlowAssigned
from lauf.domain.flows.models import FlowStatus, FlowVersion


class AssignmentDomainService:
    """
    Pure domain operations, no I/O. All methods return Result[T].
    The application layer calls these and then persists via the repositories.
    """

    def validate_request(
        self,
        user_id: str,
        buddy_id: Optional[str],
        deadline: Optional[datetime],
        now: datetime,
    ) -> Result[None]:
        return validate_assignment_request(user_id, buddy_id, deadline, now)

    def assign(
        self,
        user_id: str,
        flow: FlowVersion,
        assigned_by: str,
        existing: Iterable[FlowAssignment],
        now: datetime,
        buddy_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Result[tuple[FlowAssignment, FlowAssigned]]:
        """Bind ``user_id`` to the given active flow version."""
        if not flow.is_active or flow.status != FlowStatus.ACTIVE:
            return Result.fail(NoActiveVersionError(flow.entity_name, flow.original_id))

        for other in existing:
            if other.flow_id == flow.original_id and other.user_id == user_id and other.is_open:
                return Result.fail(DuplicateAssignmentError(user_id, flow.original_id, other.id))

        if deadline is None and flow.settings.time_to_complete_working_days:
            deadline = add_working_days(now, flow.settings.time_to_complete_working_days)

        assignment = FlowAssignment(
            user_id=user_id,
            flow_id=flow.original_id,
            flow_version_id=flow.id,
            assigned_by=assigned_by,
            buddy_id=buddy_id,
            deadline=deadline,
            notes=notes,
            assigned_at=now,
            updated_at=now,
        )
        event = FlowAssigned(
            assignment_id=assignment.id,
            user_id=user_id,
            flow_id=flow.original_id,
            flow_version_id=flow.id,
            flow_title=flow.title,
            assigned_by=assigned_by,
            buddy_id=buddy_id,
            deadline=deadline,
            is_required=flow.is_required,
            priority=flow.priority,
        )
        return Result.ok((assignment, event))

    def transition(self, assignment: FlowAssignment, new_status: AssignmentStatus, now: datetime) -> Result[FlowAssignment]:
        validation = validate_status_transition(assignment.status, new_status)
        if not validation.is_success:
            return Result.fail(validation.error)

        assignment.status = new_status
        assignment.updated_at = now
        if new_status == AssignmentStatus.IN_PROGRESS and assignment.started_at is None:
            assignment.started_at = now
        if new_status == AssignmentStatus.COMPLETED:
            assignment.completed_at = now
        return Result.ok(assignment)

    def cancel(self, assignment: FlowAssignment, cancelled_by: str, now: datetime) -> Result[tuple[FlowAssignment, AssignmentCancelled]]:
        result = self.transition(assignment, AssignmentStatus.CANCELLED, now)
        if not result.is_success:
            return Result.fail(result.error)
        event = AssignmentCancelled(
            assignment_id=assignment.id,
            user_id=assignment.user_id,
            flow_id=assignment.flow_id,
            cancelled_by=cancelled_by,
        )
        return Result.ok((assignment, event))
