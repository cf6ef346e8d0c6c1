"""Application service — authoring, drafting and activating flow version trees."""
from __future__ import annotations
import logging
import threading
from collections import defaultdict
from typing import Dict, List, Optional

from lauf.application.event_dispatcher import OutboxDispatcher
from lauf.application.transactions import UnitOfWorkFactory, run_in_transaction
from lauf.application.versioning import VersionedEntityManager, VersionHistory
from lauf.domain.common.errors import (
    ConcurrentActivationError,
    NoActiveVersionError,
    ValidationError,
    VersionNotFoundError,
)
from lauf.domain.common.result import Result
from lauf.domain.events import FlowVersionActivated
from lauf.domain.flows.models import (
    ComponentVersion,
    FlowSnapshot,
    FlowStepVersion,
    FlowVersion,
    StepNode,
)
from lauf.domain.flows.service import FlowDomainService
from lauf.domain.versioning.rules import next_version_number
from lauf.persistence.interfaces.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def load_snapshot(uow: UnitOfWork, flow_version_id: str) -> Optional[FlowSnapshot]:
    """Assemble one flow version with its owned steps and components, in order."""
    flow = uow.flows.get_by_id(flow_version_id)
    if flow is None:
        return None
    by_step: Dict[str, List[ComponentVersion]] = defaultdict(list)
    for component in uow.components.list_by_flow_version(flow.id):
        by_step[component.step_version_id].append(component)
    steps = [StepNode(step, by_step[step.id]) for step in uow.steps.list_by_flow_version(flow.id)]
    return FlowSnapshot(flow=flow, steps=steps)


class FlowAppService:
    def __init__(self, uow_factory: UnitOfWorkFactory, dispatcher: Optional[OutboxDispatcher] = None):
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher
        self._domain = FlowDomainService()
        self.flow_versions: VersionedEntityManager[FlowVersion] = VersionedEntityManager(
            uow_factory, lambda uow: uow.flows, "Flow"
        )
        self.step_versions: VersionedEntityManager[FlowStepVersion] = VersionedEntityManager(
            uow_factory, lambda uow: uow.steps, "FlowStep"
        )
        self.component_versions: VersionedEntityManager[ComponentVersion] = VersionedEntityManager(
            uow_factory, lambda uow: uow.components, "Component"
        )

    # ------------------------------------------------------------------
    # CREATE / EDIT (editable versions only)
    # ------------------------------------------------------------------
    def create_flow(self, created_by: str, data: dict) -> Result[FlowVersion]:
        result = self._domain.create_flow(created_by, data)
        if not result.is_success:
            return result
        flow = result.value

        def work(uow: UnitOfWork) -> Result[FlowVersion]:
            uow.flows.add(flow)
            return Result.ok(flow)

        saved = run_in_transaction(self._uow_factory, work, "create_flow")
        if saved.is_success:
            logger.info("Flow '%s' created by %s: %s", flow.original_id, created_by, flow.title)
        return saved

    def update_flow(self, flow_version_id: str, data: dict) -> Result[FlowVersion]:
        def work(uow: UnitOfWork) -> Result[FlowVersion]:
            flow = uow.flows.get_by_id(flow_version_id)
            if flow is None:
                return Result.fail(VersionNotFoundError("Flow", flow_version_id))
            result = self._domain.update_flow(flow, data)
            if not result.is_success:
                return result
            uow.flows.update(result.value)
            return result

        return run_in_transaction(self._uow_factory, work, "update_flow")

    def add_step(self, flow_version_id: str, data: dict) -> Result[FlowStepVersion]:
        def work(uow: UnitOfWork) -> Result[FlowStepVersion]:
            flow = uow.flows.get_by_id(flow_version_id)
            if flow is None:
                return Result.fail(VersionNotFoundError("Flow", flow_version_id))
            orders = [s.order for s in uow.steps.list_by_flow_version(flow.id)]
            result = self._domain.add_step(flow, orders, data)
            if not result.is_success:
                return result
            uow.steps.add(result.value)
            return result

        return run_in_transaction(self._uow_factory, work, "add_step")

    def add_component(self, step_version_id: str, data: dict) -> Result[ComponentVersion]:
        def work(uow: UnitOfWork) -> Result[ComponentVersion]:
            step = uow.steps.get_by_id(step_version_id)
            if step is None:
                return Result.fail(VersionNotFoundError("FlowStep", step_version_id))
            flow = uow.flows.get_by_id(step.flow_version_id)
            orders = [c.order for c in uow.components.list_by_step_version(step.id)]
            result = self._domain.add_component(flow, step, orders, data)
            if not result.is_success:
                return result
            uow.components.add(result.value)
            return result

        return run_in_transaction(self._uow_factory, work, "add_component")

    # ------------------------------------------------------------------
    # VERSIONING
    # ------------------------------------------------------------------
    def draft_new_version(self, flow_id: str, actor_id: str) -> Result[FlowVersion]:
        """Deep-copy the active flow tree into a new, editable version."""
        def work(uow: UnitOfWork) -> Result[FlowVersion]:
            active = uow.flows.get_active(flow_id)
            if active is None:
                return Result.fail(NoActiveVersionError("Flow", flow_id))
            drafted = self.flow_versions.create_new_version_in(uow, flow_id, created_by=actor_id)
            if not drafted.is_success:
                return drafted
            new_flow = drafted.value

            for step in uow.steps.list_by_flow_version(active.id):
                new_step = step.new_version(
                    next_version_number(uow.steps.get_latest_version_number(step.original_id)),
                    flow_version_id=new_flow.id,
                )
                uow.steps.add(new_step)
                for component in uow.components.list_by_step_version(step.id):
                    uow.components.add(component.new_version(
                        next_version_number(uow.components.get_latest_version_number(component.original_id)),
                        step_version_id=new_step.id,
                    ))
            return Result.ok(new_flow)

        result = run_in_transaction(self._uow_factory, work, "draft_new_version")
        if result.is_success:
            logger.info("Flow '%s' drafted version %d by %s", flow_id, result.value.version, actor_id)
        return result

    def activate_flow_version(
        self,
        flow_version_id: str,
        actor_id: str,
        cancel: Optional[threading.Event] = None,
    ) -> Result[FlowVersion]:
        """
        Make one flow version (and every step / component it owns) the active one.

        The previously active tree is deactivated in the same transaction.
        Not replayed on conflict: a concurrent activation of the same flow
        that commits first makes this one fail.
        """
        found = self.flow_versions.get_version(flow_version_id)
        if not found.is_success:
            return found
        flow_id = found.value.original_id

        def work(uow: UnitOfWork) -> Result[FlowVersion]:
            snapshot = load_snapshot(uow, flow_version_id)
            if snapshot is None:
                return Result.fail(VersionNotFoundError("Flow", flow_version_id))
            flow = snapshot.flow
            if flow.is_active:
                return Result.ok(flow)
            if not snapshot.steps:
                return Result.fail(ValidationError("A flow needs at least one step before activation.", field="steps"))

            previous = uow.flows.get_active(flow_id)
            carried_steps = set()
            carried_components = set()
            for node in snapshot.steps:
                carried_steps.add(node.step.original_id)
                result = self.step_versions.activate_in(uow, node.step.id)
                if not result.is_success:
                    return Result.fail(result.error)
                for component in node.components:
                    carried_components.add(component.original_id)
                    result = self.component_versions.activate_in(uow, component.id)
                    if not result.is_success:
                        return Result.fail(result.error)

            if previous is not None:
                # retire children of the old tree that the new version dropped
                old = load_snapshot(uow, previous.id)
                for node in old.steps:
                    if node.step.original_id not in carried_steps:
                        self.step_versions.deactivate_in(uow, node.step.id)
                    for component in node.components:
                        if component.original_id not in carried_components:
                            self.component_versions.deactivate_in(uow, component.id)

            result = self.flow_versions.activate_in(uow, flow.id)
            if not result.is_success:
                return Result.fail(result.error)
            activated = uow.flows.get_by_id(flow.id)
            uow.collect(FlowVersionActivated(
                flow_id=flow_id,
                flow_version_id=activated.id,
                flow_version=activated.version,
                previous_version_id=previous.id if previous else None,
                activated_by=actor_id,
            ))
            return Result.ok(activated)

        result = run_in_transaction(
            self._uow_factory,
            work,
            "activate_flow_version",
            retry_limit=0,
            cancel=cancel,
            on_conflict=lambda conflict: ConcurrentActivationError("Flow", flow_id),
        )
        if result.is_success:
            logger.info("Flow '%s' version %d activated by %s", flow_id, result.value.version, actor_id)
            if self._dispatcher is not None:
                self._dispatcher.drain()
        return result

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------
    def get_snapshot(self, flow_version_id: str) -> Result[FlowSnapshot]:
        with self._uow_factory() as uow:
            snapshot = load_snapshot(uow, flow_version_id)
        if snapshot is None:
            return Result.fail(VersionNotFoundError("Flow", flow_version_id))
        return Result.ok(snapshot)

    def get_active_snapshot(self, flow_id: str) -> Result[FlowSnapshot]:
        active = self.flow_versions.get_active(flow_id)
        if not active.is_success:
            return Result.fail(active.error)
        return self.get_snapshot(active.value.id)

    def get_history(self, flow_id: str) -> VersionHistory[FlowVersion]:
        return self.flow_versions.get_history(flow_id)

    def list_flows(self) -> List[FlowVersion]:
        with self._uow_factory() as uow:
            return uow.flows.list_latest()
