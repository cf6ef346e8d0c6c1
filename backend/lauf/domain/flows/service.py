"""Domain service — pure business logic for authoring the flow tree."""
from __future__ import annotations
from typing import Iterable

from lauf.domain.common.clock import utc_now
from lauf.domain.common.errors import ValidationError
from lauf.domain.common.result import Result
from lauf.domain.flows.models import ComponentType, ComponentVersion, FlowSettings, FlowStepVersion, FlowVersion
from lauf.domain.flows.rules import (
    validate_component_content,
    validate_flow_content,
    validate_order,
    validate_settings,
    validate_step_content,
)
from lauf.domain.versioning.rules import ensure_editable


class FlowDomainService:
    """
    Pure domain operations — no I/O. All methods return Result[T].
    The application layer calls these and then persists via the repositories.
    """

    def create_flow(self, created_by: str, data: dict) -> Result[FlowVersion]:
        """Create a brand-new flow in Draft with version 1, not active."""
        validation = validate_flow_content(data)
        if not validation.is_success:
            return Result.fail(validation.error)

        flow = FlowVersion(
            version=1,
            is_active=False,
            title=data["title"].strip(),
            description=data["description"].strip(),
            category=(data.get("category") or "").strip(),
            tags=[t.strip() for t in data.get("tags") or []],
            priority=data.get("priority", 5),
            is_required=bool(data.get("is_required", False)),
            created_by=created_by,
            settings=FlowSettings.from_dict(data.get("settings")),
        )
        return Result.ok(flow)

    def update_flow(self, flow: FlowVersion, data: dict) -> Result[FlowVersion]:
        """Edit metadata of a version that has never been activated."""
        editable = ensure_editable(flow)
        if not editable.is_success:
            return Result.fail(editable.error)

        merged = {
            "title": flow.title,
            "description": flow.description,
            "priority": flow.priority,
            "tags": flow.tags,
            "settings": flow.settings.to_dict(),
        }
        merged.update({k: v for k, v in data.items() if v is not None})
        validation = validate_flow_content(merged)
        if not validation.is_success:
            return Result.fail(validation.error)

        flow.title = merged["title"].strip()
        flow.description = merged["description"].strip()
        flow.priority = merged["priority"]
        flow.tags = [t.strip() for t in merged["tags"]]
        if "category" in data and data["category"] is not None:
            flow.category = data["category"].strip()
        if "is_required" in data and data["is_required"] is not None:
            flow.is_required = bool(data["is_required"])
        flow.settings = validate_settings(merged["settings"]).value
        flow.updated_at = utc_now()
        return Result.ok(flow)

    def add_step(self, flow: FlowVersion, existing_orders: Iterable[int], data: dict) -> Result[FlowStepVersion]:
        editable = ensure_editable(flow)
        if not editable.is_success:
            return Result.fail(editable.error)

        validation = validate_step_content(data)
        if not validation.is_success:
            return Result.fail(validation.error)

        order = validate_order(data.get("order"), existing_orders, f"flow version '{flow.id}'")
        if not order.is_success:
            return Result.fail(order.error)

        step = FlowStepVersion(
            flow_version_id=flow.id,
            order=order.value,
            title=data["title"].strip(),
            description=(data.get("description") or "").strip(),
        )
        return Result.ok(step)

    def add_component(
        self,
        flow: FlowVersion,
        step: FlowStepVersion,
        existing_orders: Iterable[int],
        data: dict,
    ) -> Result[ComponentVersion]:
        if step.flow_version_id != flow.id:
            return Result.fail(ValidationError(
                f"Step '{step.id}' does not belong to flow version '{flow.id}'.", field="step_version_id"
            ))
        for owner in (flow, step):
            editable = ensure_editable(owner)
            if not editable.is_success:
                return Result.fail(editable.error)

        validation = validate_component_content(data)
        if not validation.is_success:
            return Result.fail(validation.error)
        component_type: ComponentType = validation.value

        order = validate_order(data.get("order"), existing_orders, f"step version '{step.id}'")
        if not order.is_success:
            return Result.fail(order.error)

        component = ComponentVersion(
            step_version_id=step.id,
            order=order.value,
            title=data["title"].strip(),
            description=(data.get("description") or "").strip(),
            component_type=component_type,
            is_required=bool(data.get("is_required", True)),
            estimated_duration_minutes=data.get("estimated_duration_minutes", 15),
            settings=dict(data.get("settings") or {}),
        )
        return Result.ok(component)
