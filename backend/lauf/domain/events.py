"""
Domain events: immutable value records raised by state transitions.

Events are appended to the unit of work's outbox while the transaction is
open and only dispatched after it commits. Delivery is at-least-once, so
consumers key on ``event_id``.
"""
from __future__ import annotations
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from lauf.domain.common.clock import from_iso, new_id, utc_now

EVENT_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class DomainEvent:
    event_id: str = field(default_factory=new_id)
    occurred_at: datetime = field(default_factory=utc_now)
    version: int = EVENT_SCHEMA_VERSION

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict of every field."""
        payload = {}
        for f in dataclasses.fields(self):
            payload[f.name] = _jsonable(getattr(self, f.name))
        return payload

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "DomainEvent":
        """Rebuild an event from ``to_payload`` output, e.g. an outbox row."""
        values = {}
        for f in dataclasses.fields(cls):
            if f.name not in payload:
                continue
            value = payload[f.name]
            # annotations are plain strings under ``from __future__ import annotations``
            if value is not None and "datetime" in str(f.type):
                value = from_iso(value)
            values[f.name] = value
        return cls(**values)


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class FlowVersionActivated(DomainEvent):
    flow_id: str = ""
    flow_version_id: str = ""
    flow_version: int = 0
    previous_version_id: Optional[str] = None
    activated_by: str = ""


@dataclass(frozen=True)
class FlowAssigned(DomainEvent):
    assignment_id: str = ""
    user_id: str = ""
    flow_id: str = ""
    flow_version_id: str = ""
    flow_title: str = ""
    assigned_by: str = ""
    buddy_id: Optional[str] = None
    deadline: Optional[datetime] = None
    is_required: bool = False
    priority: int = 0


@dataclass(frozen=True)
class ComponentCompleted(DomainEvent):
    user_id: str = ""
    assignment_id: str = ""
    component_progress_id: str = ""
    component_version_id: str = ""
    component_type: str = ""
    component_title: str = ""
    step_version_id: str = ""
    was_required: bool = True
    score: Optional[int] = None
    best_score: Optional[int] = None
    passed: Optional[bool] = None
    time_spent_minutes: int = 0
    attempts: int = 0
    flow_progress_before: int = 0
    flow_progress_after: int = 0


@dataclass(frozen=True)
class StepCompleted(DomainEvent):
    user_id: str = ""
    assignment_id: str = ""
    step_version_id: str = ""
    step_title: str = ""
    step_order: int = 0
    flow_progress: int = 0


@dataclass(frozen=True)
class StepUnlocked(DomainEvent):
    user_id: str = ""
    assignment_id: str = ""
    step_version_id: str = ""
    step_title: str = ""
    step_order: int = 0
    previous_step_version_id: Optional[str] = None
    components_count: int = 0
    is_last_step: bool = False


@dataclass(frozen=True)
class FlowCompleted(DomainEvent):
    user_id: str = ""
    assignment_id: str = ""
    flow_id: str = ""
    flow_version_id: str = ""
    flow_title: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    deadline: Optional[datetime] = None
    completed_on_time: bool = True
    total_time_spent_minutes: int = 0
    completed_steps: int = 0
    total_steps: int = 0
    final_progress: int = 100
    buddy_id: Optional[str] = None


@dataclass(frozen=True)
class AssignmentCancelled(DomainEvent):
    assignment_id: str = ""
    user_id: str = ""
    flow_id: str = ""
    cancelled_by: str = ""


EVENT_TYPES: Dict[str, type] = {
    cls.__name__: cls
    for cls in (
        FlowVersionActivated,
        FlowAssigned,
        ComponentCompleted,
        StepCompleted,
        StepUnlocked,
        FlowCompleted,
        AssignmentCancelled,
    )
}
