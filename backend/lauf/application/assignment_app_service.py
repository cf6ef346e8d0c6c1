"""Application service — binds users to the active flow snapshot and manages the assignment lifecycle."""
from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional

from lauf.application.event_dispatcher import OutboxDispatcher
from lauf.application.transactions import UnitOfWorkFactory, run_in_transaction
from lauf.domain.assignments.models import AssignmentStatus, FlowAssignment
from lauf.domain.assignments.service import AssignmentDomainService
from lauf.domain.common.clock import utc_now
from lauf.domain.common.errors import AssignmentNotFoundError, NoActiveVersionError
from lauf.domain.common.result import Result
from lauf.persistence.interfaces.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class AssignmentAppService:
    def __init__(self, uow_factory: UnitOfWorkFactory, dispatcher: Optional[OutboxDispatcher] = None):
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher
        self._domain = AssignmentDomainService()

    def _dispatch(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.drain()

    # ------------------------------------------------------------------
    # ASSIGN
    # ------------------------------------------------------------------
    def assign_flow(
        self,
        user_id: str,
        flow_id: str,
        created_by: str,
        buddy_id: Optional[str] = None,
        deadline: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> Result[FlowAssignment]:
        """
        Bind ``user_id`` to the flow's currently active version.

        The assignment keeps that version id for good; later activations of
        the flow never re-point it.
        """
        now = utc_now()
        # structural checks happen before any store access
        validation = self._domain.validate_request(user_id, buddy_id, deadline, now)
        if not validation.is_success:
            return Result.fail(validation.error)

        def work(uow: UnitOfWork) -> Result[FlowAssignment]:
            flow = uow.flows.get_active(flow_id)
            if flow is None:
                return Result.fail(NoActiveVersionError("Flow", flow_id))
            existing = uow.assignments.list_by_user_and_flow(user_id, flow_id)
            result = self._domain.assign(
                user_id,
                flow,
                created_by,
                existing,
                now,
                buddy_id=buddy_id,
                deadline=deadline,
                notes=notes,
            )
            if not result.is_success:
                return Result.fail(result.error)
            assignment, event = result.value
            uow.assignments.add(assignment)
            uow.collect(event)
            return Result.ok(assignment)

        result = run_in_transaction(self._uow_factory, work, "assign_flow")
        if result.is_success:
            logger.info(
                "Flow '%s' version '%s' assigned to %s by %s",
                flow_id, result.value.flow_version_id, user_id, created_by,
            )
            self._dispatch()
        return result

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------
    def cancel_assignment(self, assignment_id: str, cancelled_by: str) -> Result[FlowAssignment]:
        def work(uow: UnitOfWork) -> Result[FlowAssignment]:
            assignment = uow.assignments.get_by_id(assignment_id)
            if assignment is None:
                return Result.fail(AssignmentNotFoundError(assignment_id))
            result = self._domain.cancel(assignment, cancelled_by, utc_now())
            if not result.is_success:
                return Result.fail(result.error)
            assignment, event = result.value
            uow.assignments.update(assignment)
            uow.collect(event)
            return Result.ok(assignment)

        result = run_in_transaction(self._uow_factory, work, "cancel_assignment")
        if result.is_success:
            logger.info("Assignment '%s' cancelled by %s", assignment_id, cancelled_by)
            self._dispatch()
        return result

    def pause_assignment(self, assignment_id: str) -> Result[FlowAssignment]:
        return self._transition(assignment_id, AssignmentStatus.PAUSED)

    def resume_assignment(self, assignment_id: str) -> Result[FlowAssignment]:
        return self._transition(assignment_id, AssignmentStatus.IN_PROGRESS)

    def _transition(self, assignment_id: str, new_status: AssignmentStatus) -> Result[FlowAssignment]:
        def work(uow: UnitOfWork) -> Result[FlowAssignment]:
            assignment = uow.assignments.get_by_id(assignment_id)
            if assignment is None:
                return Result.fail(AssignmentNotFoundError(assignment_id))
            result = self._domain.transition(assignment, new_status, utc_now())
            if not result.is_success:
                return result
            uow.assignments.update(assignment)
            return result

        return run_in_transaction(self._uow_factory, work, f"assignment:{new_status.value}")

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def get_assignment(self, assignment_id: str) -> Result[FlowAssignment]:
        with self._uow_factory() as uow:
            assignment = uow.assignments.get_by_id(assignment_id)
        if assignment is None:
            return Result.fail(AssignmentNotFoundError(assignment_id))
        return Result.ok(assignment)

    def list_user_assignments(self, user_id: str) -> List[FlowAssignment]:
        with self._uow_factory() as uow:
            return uow.assignments.list_by_user(user_id)

    def list_overdue(self, user_id: str) -> List[FlowAssignment]:
        now = utc_now()
        return [a for a in self.list_user_assignments(user_id) if a.is_open and a.is_overdue(now)]
