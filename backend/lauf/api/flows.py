"""Flow authoring + versioning API endpoints."""
from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from lauf.api.auth import get_current_user, require_author
from lauf.api.errors import unwrap_or_raise
from lauf.application.flow_app_service import FlowAppService
from lauf.container import get_flow_app_service
from lauf.domain.common.clock import to_iso
from lauf.domain.flows.models import ComponentVersion, FlowSnapshot, FlowStepVersion, FlowVersion
from lauf.domain.versioning.models import VersionedEntity

router = APIRouter(tags=["flows"])


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class FlowSettingsBody(BaseModel):
    allow_skipping: bool = False
    require_sequential_completion: bool = True
    max_attempts: Optional[int] = None
    time_to_complete_working_days: Optional[int] = None
    allow_retry: bool = False
    allow_pause: bool = True
    show_progress: bool = True
    send_reminders: bool = True
    additional: Dict[str, Any] = {}


class FlowCreateBody(BaseModel):
    title: str
    description: str
    category: str = ""
    tags: List[str] = []
    priority: int = 5
    is_required: bool = False
    settings: FlowSettingsBody = Field(default_factory=FlowSettingsBody)


class FlowUpdateBody(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    priority: Optional[int] = None
    is_required: Optional[bool] = None
    settings: Optional[FlowSettingsBody] = None


class StepBody(BaseModel):
    title: str
    description: str = ""
    order: Optional[int] = None


class ComponentBody(BaseModel):
    title: str
    component_type: str
    description: str = ""
    is_required: bool = True
    order: Optional[int] = None
    estimated_duration_minutes: int = 15
    settings: Dict[str, Any] = {}


# ------------------------------------------------------------------
# Serializers
# ------------------------------------------------------------------
def _serialize_version_fields(v: VersionedEntity) -> dict:
    return {
        "id": v.id,
        "original_id": v.original_id,
        "version": v.version,
        "is_active": v.is_active,
        "created_at": to_iso(v.created_at),
        "updated_at": to_iso(v.updated_at),
        "activated_at": to_iso(v.activated_at),
    }


def serialize_flow(f: FlowVersion) -> dict:
    return {
        **_serialize_version_fields(f),
        "title": f.title,
        "description": f.description,
        "category": f.category,
        "tags": f.tags,
        "status": f.status.value,
        "priority": f.priority,
        "is_required": f.is_required,
        "created_by": f.created_by,
        "settings": f.settings.to_dict(),
    }


def serialize_step(s: FlowStepVersion) -> dict:
    return {
        **_serialize_version_fields(s),
        "flow_version_id": s.flow_version_id,
        "order": s.order,
        "title": s.title,
        "description": s.description,
        "status": s.status.value,
    }


def serialize_component(c: ComponentVersion) -> dict:
    return {
        **_serialize_version_fields(c),
        "step_version_id": c.step_version_id,
        "order": c.order,
        "title": c.title,
        "description": c.description,
        "component_type": c.component_type.value,
        "status": c.status.value,
        "is_required": c.is_required,
        "estimated_duration_minutes": c.estimated_duration_minutes,
        "settings": c.settings,
    }


def serialize_snapshot(snapshot: FlowSnapshot) -> dict:
    return {
        "flow": serialize_flow(snapshot.flow),
        "total_steps": snapshot.total_steps,
        "estimated_duration_minutes": snapshot.estimated_duration_minutes,
        "steps": [
            {
                **serialize_step(node.step),
                "total_components": node.total_components,
                "required_components": len(node.required_components),
                "components": [serialize_component(c) for c in node.components],
            }
            for node in snapshot.steps
        ],
    }


# ------------------------------------------------------------------
# Health check
# ------------------------------------------------------------------
@router.get("/health")
def health():
    return {"status": "ok"}


# ------------------------------------------------------------------
# Flow endpoints
# ------------------------------------------------------------------
@router.get("/flows/")
def list_flows(
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(get_current_user),
):
    return [serialize_flow(f) for f in svc.list_flows()]


@router.post("/flows/", status_code=status.HTTP_201_CREATED)
def create_flow(
    body: FlowCreateBody,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(require_author),
):
    flow = unwrap_or_raise(svc.create_flow(created_by=current_user["sub"], data=body.model_dump()))
    return serialize_flow(flow)


@router.put("/flows/versions/{flow_version_id}")
def update_flow(
    flow_version_id: str,
    body: FlowUpdateBody,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(require_author),
):
    flow = unwrap_or_raise(svc.update_flow(flow_version_id, body.model_dump(exclude_none=True)))
    return serialize_flow(flow)


@router.post("/flows/versions/{flow_version_id}/steps", status_code=status.HTTP_201_CREATED)
def add_step(
    flow_version_id: str,
    body: StepBody,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(require_author),
):
    return serialize_step(unwrap_or_raise(svc.add_step(flow_version_id, body.model_dump())))


@router.post("/flows/steps/{step_version_id}/components", status_code=status.HTTP_201_CREATED)
def add_component(
    step_version_id: str,
    body: ComponentBody,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(require_author),
):
    return serialize_component(unwrap_or_raise(svc.add_component(step_version_id, body.model_dump())))


@router.post("/flows/versions/{flow_version_id}/activate")
def activate_flow_version(
    flow_version_id: str,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(require_author),
):
    return serialize_flow(unwrap_or_raise(svc.activate_flow_version(flow_version_id, actor_id=current_user["sub"])))


@router.post("/flows/{flow_id}/draft", status_code=status.HTTP_201_CREATED)
def draft_new_version(
    flow_id: str,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(require_author),
):
    return serialize_flow(unwrap_or_raise(svc.draft_new_version(flow_id, actor_id=current_user["sub"])))


# ------------------------------------------------------------------
# Versioning / snapshot reads
# ------------------------------------------------------------------
@router.get("/flows/{flow_id}/versions")
def get_versions(
    flow_id: str,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(get_current_user),
):
    return [serialize_flow(v) for v in svc.get_history(flow_id)]


@router.get("/flows/{flow_id}/active")
def get_active_snapshot(
    flow_id: str,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(get_current_user),
):
    return serialize_snapshot(unwrap_or_raise(svc.get_active_snapshot(flow_id)))


@router.get("/flows/versions/{flow_version_id}")
def get_snapshot(
    flow_version_id: str,
    svc: FlowAppService = Depends(get_flow_app_service),
    current_user: dict = Depends(get_current_user),
):
    return serialize_snapshot(unwrap_or_raise(svc.get_snapshot(flow_version_id)))
