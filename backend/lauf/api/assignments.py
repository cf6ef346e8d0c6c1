"""Assignment, interaction and progress API endpoints."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from lauf.api.auth import AUTHOR_ROLES, get_current_user, require_author
from lauf.api.errors import unwrap_or_raise
from lauf.application.assignment_app_service import AssignmentAppService
from lauf.application.progress_app_service import InteractionResult, ProgressAppService
from lauf.container import get_assignment_app_service, get_progress_app_service
from lauf.domain.assignments.models import FlowAssignment
from lauf.domain.common.clock import to_iso, utc_now
from lauf.domain.progress.models import ComponentProgress, FlowProgressView, Interaction, InteractionType

router = APIRouter(prefix="/assignments", tags=["assignments"])


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class AssignBody(BaseModel):
    user_id: str
    flow_id: str
    buddy_id: Optional[str] = None
    deadline: Optional[datetime] = None
    notes: Optional[str] = None


class InteractionBody(BaseModel):
    interaction_type: InteractionType
    score: Optional[int] = None
    max_score: Optional[int] = None
    time_spent_seconds: int = 0
    data: Dict[str, Any] = {}


# ------------------------------------------------------------------
# Serializers
# ------------------------------------------------------------------
def serialize_assignment(a: FlowAssignment) -> dict:
    now = utc_now()
    return {
        "id": a.id,
        "user_id": a.user_id,
        "flow_id": a.flow_id,
        "flow_version_id": a.flow_version_id,
        "assigned_by": a.assigned_by,
        "buddy_id": a.buddy_id,
        "deadline": to_iso(a.deadline),
        "notes": a.notes,
        "status": a.status.value,
        "progress_percent": a.progress_percent,
        "assigned_at": to_iso(a.assigned_at),
        "started_at": to_iso(a.started_at),
        "completed_at": to_iso(a.completed_at),
        "is_overdue": a.is_overdue(now),
        "days_until_deadline": a.days_until_deadline(now),
    }


def serialize_component_progress(p: ComponentProgress) -> dict:
    return {
        "id": p.id,
        "component_version_id": p.component_version_id,
        "step_version_id": p.step_version_id,
        "status": p.status.value,
        "attempts": p.attempts,
        "time_spent_minutes": p.time_spent_minutes,
        "score": p.score,
        "max_score": p.max_score,
        "best_score": p.best_score,
        "passed": p.passed,
        "started_at": to_iso(p.started_at),
        "completed_at": to_iso(p.completed_at),
        "progress_data": p.progress_data,
    }


def serialize_flow_progress(view: FlowProgressView) -> dict:
    return {
        "assignment_id": view.assignment_id,
        "flow_version_id": view.flow_version_id,
        "percent": view.percent,
        "completed_required": view.completed_required,
        "total_required": view.total_required,
        "is_completed": view.is_completed,
        "steps": [
            {
                "step_version_id": s.step_version_id,
                "order": s.order,
                "title": s.title,
                "status": s.status.value,
                "is_unlocked": s.is_unlocked,
                "completed_required": s.completed_required,
                "total_required": s.total_required,
            }
            for s in view.steps
        ],
        "components": [serialize_component_progress(p) for p in view.components.values()],
    }


def _serialize_interaction(result: InteractionResult) -> dict:
    return {
        "changed": result.changed,
        "assignment": serialize_assignment(result.assignment),
        "progress": serialize_component_progress(result.progress) if result.progress else None,
        "flow_progress": serialize_flow_progress(result.flow_progress),
        "events": [e.event_type for e in result.events],
    }


def _ensure_access(assignment: FlowAssignment, current_user: dict) -> None:
    if current_user.get("role") in AUTHOR_ROLES:
        return
    if current_user["sub"] not in (assignment.user_id, assignment.buddy_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your assignment")


# ------------------------------------------------------------------
# Assignment endpoints
# ------------------------------------------------------------------
@router.post("/", status_code=status.HTTP_201_CREATED)
def assign_flow(
    body: AssignBody,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(require_author),
):
    assignment = unwrap_or_raise(svc.assign_flow(
        user_id=body.user_id,
        flow_id=body.flow_id,
        created_by=current_user["sub"],
        buddy_id=body.buddy_id,
        deadline=body.deadline,
        notes=body.notes,
    ))
    return serialize_assignment(assignment)


@router.get("/mine")
def list_my_assignments(
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    return [serialize_assignment(a) for a in svc.list_user_assignments(current_user["sub"])]


@router.get("/user/{user_id}")
def list_user_assignments(
    user_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(require_author),
):
    return [serialize_assignment(a) for a in svc.list_user_assignments(user_id)]


@router.get("/{assignment_id}")
def get_assignment(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    assignment = unwrap_or_raise(svc.get_assignment(assignment_id))
    _ensure_access(assignment, current_user)
    return serialize_assignment(assignment)


@router.post("/{assignment_id}/cancel")
def cancel_assignment(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(require_author),
):
    return serialize_assignment(unwrap_or_raise(svc.cancel_assignment(assignment_id, cancelled_by=current_user["sub"])))


@router.post("/{assignment_id}/pause")
def pause_assignment(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    _ensure_access(unwrap_or_raise(svc.get_assignment(assignment_id)), current_user)
    return serialize_assignment(unwrap_or_raise(svc.pause_assignment(assignment_id)))


@router.post("/{assignment_id}/resume")
def resume_assignment(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    current_user: dict = Depends(get_current_user),
):
    _ensure_access(unwrap_or_raise(svc.get_assignment(assignment_id)), current_user)
    return serialize_assignment(unwrap_or_raise(svc.resume_assignment(assignment_id)))


# ------------------------------------------------------------------
# Progress + interactions
# ------------------------------------------------------------------
@router.get("/{assignment_id}/progress")
def get_progress(
    assignment_id: str,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    progress: ProgressAppService = Depends(get_progress_app_service),
    current_user: dict = Depends(get_current_user),
):
    _ensure_access(unwrap_or_raise(svc.get_assignment(assignment_id)), current_user)
    return serialize_flow_progress(unwrap_or_raise(progress.get_flow_progress(assignment_id)))


@router.post("/{assignment_id}/components/{component_version_id}/interactions")
def interact(
    assignment_id: str,
    component_version_id: str,
    body: InteractionBody,
    svc: AssignmentAppService = Depends(get_assignment_app_service),
    progress: ProgressAppService = Depends(get_progress_app_service),
    current_user: dict = Depends(get_current_user),
):
    assignment = unwrap_or_raise(svc.get_assignment(assignment_id))
    # only the assignee moves their own progress
    if current_user["sub"] != assignment.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the assignee can record interactions")
    interaction = Interaction(
        type=body.interaction_type,
        score=body.score,
        max_score=body.max_score,
        time_spent_seconds=body.time_spent_seconds,
        data=body.data,
    )
    return _serialize_interaction(unwrap_or_raise(progress.interact(assignment_id, component_version_id, interaction)))
