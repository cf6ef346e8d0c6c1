"""Application service — records interactions and drives component → step → flow progress."""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from lauf.application.event_dispatcher import OutboxDispatcher
from lauf.application.flow_app_service import load_snapshot
from lauf.application.transactions import UnitOfWorkFactory, run_in_transaction
from lauf.domain.assignments.models import AssignmentStatus, FlowAssignment
from lauf.domain.assignments.service import AssignmentDomainService
from lauf.domain.common.clock import utc_now
from lauf.domain.common.errors import (
    AssignmentNotFoundError,
    ComponentNotInSnapshotError,
    InvalidTransitionError,
    StaleInteractionError,
    StepLockedError,
    VersionNotFoundError,
)
from lauf.domain.common.result import Result
from lauf.domain.events import ComponentCompleted, DomainEvent, FlowCompleted, StepCompleted, StepUnlocked
from lauf.domain.flows.models import ComponentVersion, FlowSnapshot, StepNode
from lauf.domain.progress.calculator import build_flow_progress
from lauf.domain.progress.models import (
    ComponentProgress,
    FlowProgressView,
    Interaction,
    InteractionType,
    UNFINISHED_STATUSES,
)
from lauf.domain.progress.rules import TransitionOutcome, apply_interaction
from lauf.persistence.interfaces.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass
class InteractionResult:
    assignment: FlowAssignment
    flow_progress: FlowProgressView
    progress: Optional[ComponentProgress] = None
    changed: bool = False
    events: List[DomainEvent] = field(default_factory=list)


class ProgressAppService:
    def __init__(self, uow_factory: UnitOfWorkFactory, dispatcher: Optional[OutboxDispatcher] = None):
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher
        self._assignments = AssignmentDomainService()

    # ------------------------------------------------------------------
    # INTERACT
    # ------------------------------------------------------------------
    def interact(
        self,
        assignment_id: str,
        component_version_id: str,
        interaction: Interaction,
        cancel: Optional[threading.Event] = None,
    ) -> Result[InteractionResult]:
        """
        Apply one interaction as a single optimistic transaction.

        Progress rows, the assignment and the outbox events are written
        together; a conflicting concurrent write replays the whole
        interaction once against fresh state.
        """
        result = run_in_transaction(
            self._uow_factory,
            lambda uow: self._interact(uow, assignment_id, component_version_id, interaction),
            f"interact:{interaction.type.value}",
            cancel=cancel,
        )
        if result.is_success and result.value.events and self._dispatcher is not None:
            self._dispatcher.drain()
        return result

    def _interact(
        self,
        uow: UnitOfWork,
        assignment_id: str,
        component_version_id: str,
        interaction: Interaction,
    ) -> Result[InteractionResult]:
        now = utc_now()
        assignment = uow.assignments.get_by_id(assignment_id)
        if assignment is None:
            return Result.fail(AssignmentNotFoundError(assignment_id))
        if assignment.status in (AssignmentStatus.CANCELLED, AssignmentStatus.PAUSED):
            return Result.fail(InvalidTransitionError(
                f"Assignment '{assignment_id}' is {assignment.status.value}; interactions are not accepted.",
                current=assignment.status.value,
                attempted=interaction.type.value,
            ))

        snapshot = load_snapshot(uow, assignment.flow_version_id)
        if snapshot is None:
            return Result.fail(VersionNotFoundError("Flow", assignment.flow_version_id))
        found = snapshot.find_component(component_version_id)
        if found is None:
            return Result.fail(ComponentNotInSnapshotError(component_version_id, assignment.flow_version_id))
        node, component = found
        settings = snapshot.flow.settings

        rows: Dict[str, ComponentProgress] = {
            p.component_version_id: p for p in uow.progress.list_by_assignment(assignment.id)
        }
        before = build_flow_progress(assignment.id, snapshot, rows)
        step_before = before.step(node.step.id)

        existing = rows.get(component.id)
        retry_permitted = interaction.type == InteractionType.RETRY and settings.allow_retry
        # a started component can always be finished, even once its step or the flow is done
        unfinished = existing is not None and existing.status in UNFINISHED_STATUSES
        if not (retry_permitted or unfinished):
            if assignment.status == AssignmentStatus.COMPLETED:
                return Result.fail(StaleInteractionError(
                    f"Assignment '{assignment.id}' is already completed.",
                    entity_id=assignment.id,
                    attempted=interaction.type.value,
                ))
            # a step without required components is complete from the start, not stale
            if step_before.is_completed and step_before.total_required:
                return Result.fail(StaleInteractionError(
                    f"Step {node.step.order} is already completed.",
                    entity_id=node.step.id,
                    attempted=interaction.type.value,
                ))

        if not step_before.is_unlocked:
            if interaction.type == InteractionType.VIEW:
                return Result.ok(InteractionResult(assignment, before, rows.get(component.id)))
            return Result.fail(StepLockedError(node.step.id, node.step.order))

        progress = existing
        is_new = progress is None
        if is_new:
            progress = ComponentProgress(
                assignment_id=assignment.id,
                component_version_id=component.id,
                step_version_id=node.step.id,
                created_at=now,
                updated_at=now,
            )

        applied = apply_interaction(progress, component, settings, interaction, now)
        if not applied.is_success:
            return Result.fail(applied.error)
        outcome = applied.value
        if not outcome.changed:
            return Result.ok(InteractionResult(assignment, before, None if is_new else progress))

        if is_new:
            uow.progress.add(progress)
        else:
            uow.progress.update(progress)
        rows[component.id] = progress
        after = build_flow_progress(assignment.id, snapshot, rows)

        # work inside a completed assignment is practice; the completion stands
        was_completed = assignment.status == AssignmentStatus.COMPLETED
        events = self._advance(assignment, snapshot, node, component, outcome, before, after, rows, now, was_completed)

        if not was_completed:
            assignment.progress_percent = after.percent
        assignment.updated_at = now
        uow.assignments.update(assignment)
        for event in events:
            uow.collect(event)
        return Result.ok(InteractionResult(assignment, after, progress, changed=True, events=events))

    def _advance(
        self,
        assignment: FlowAssignment,
        snapshot: FlowSnapshot,
        node: StepNode,
        component: ComponentVersion,
        outcome: TransitionOutcome,
        before: FlowProgressView,
        after: FlowProgressView,
        rows: Dict[str, ComponentProgress],
        now: datetime,
        practice: bool = False,
    ) -> List[DomainEvent]:
        """Roll a component transition up to its step, the flow and the assignment."""
        events: List[DomainEvent] = []
        progress = outcome.progress

        if assignment.status == AssignmentStatus.ASSIGNED:
            self._assignments.transition(assignment, AssignmentStatus.IN_PROGRESS, now)

        if outcome.became_terminal and not practice:
            index = snapshot.step_index(node.step.id)
            step_after = after.steps[index]
            if step_after.is_completed and not before.steps[index].is_completed:
                events.append(StepCompleted(
                    user_id=assignment.user_id,
                    assignment_id=assignment.id,
                    step_version_id=node.step.id,
                    step_title=node.step.title,
                    step_order=node.step.order,
                    flow_progress=after.percent,
                ))
                following = index + 1
                if (
                    snapshot.flow.settings.require_sequential_completion
                    and following < len(after.steps)
                    and after.steps[following].is_unlocked
                    and not before.steps[following].is_unlocked
                ):
                    next_node = snapshot.steps[following]
                    events.append(StepUnlocked(
                        user_id=assignment.user_id,
                        assignment_id=assignment.id,
                        step_version_id=next_node.step.id,
                        step_title=next_node.step.title,
                        step_order=next_node.step.order,
                        previous_step_version_id=node.step.id,
                        components_count=next_node.total_components,
                        is_last_step=following == len(after.steps) - 1,
                    ))

        # not tied to a terminal transition: with nothing required, the first interaction completes the flow
        if after.is_completed and assignment.status != AssignmentStatus.COMPLETED:
            self._assignments.transition(assignment, AssignmentStatus.COMPLETED, now)
            logger.info("Assignment '%s' completed by %s", assignment.id, assignment.user_id)
            events.append(FlowCompleted(
                user_id=assignment.user_id,
                assignment_id=assignment.id,
                flow_id=assignment.flow_id,
                flow_version_id=assignment.flow_version_id,
                flow_title=snapshot.flow.title,
                started_at=assignment.started_at,
                completed_at=now,
                deadline=assignment.deadline,
                completed_on_time=assignment.deadline is None or now <= assignment.deadline,
                total_time_spent_minutes=sum(p.time_spent_seconds for p in rows.values()) // 60,
                completed_steps=after.completed_steps,
                total_steps=len(after.steps),
                final_progress=after.percent,
                buddy_id=assignment.buddy_id,
            ))

        if outcome.completed:
            events.append(ComponentCompleted(
                user_id=assignment.user_id,
                assignment_id=assignment.id,
                component_progress_id=progress.id,
                component_version_id=component.id,
                component_type=component.component_type.value,
                component_title=component.title,
                step_version_id=node.step.id,
                was_required=component.is_required,
                score=progress.score,
                best_score=progress.best_score,
                passed=progress.passed,
                time_spent_minutes=progress.time_spent_minutes,
                attempts=progress.attempts,
                flow_progress_before=before.percent,
                flow_progress_after=after.percent,
            ))
        return events

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def get_flow_progress(self, assignment_id: str) -> Result[FlowProgressView]:
        with self._uow_factory() as uow:
            assignment = uow.assignments.get_by_id(assignment_id)
            if assignment is None:
                return Result.fail(AssignmentNotFoundError(assignment_id))
            snapshot = load_snapshot(uow, assignment.flow_version_id)
            rows = {p.component_version_id: p for p in uow.progress.list_by_assignment(assignment.id)}
        return Result.ok(build_flow_progress(assignment.id, snapshot, rows))

    def get_component_progress(self, assignment_id: str, component_version_id: str) -> Optional[ComponentProgress]:
        with self._uow_factory() as uow:
            return uow.progress.get(assignment_id, component_version_id)
