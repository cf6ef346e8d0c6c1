"""Flow content hierarchy — pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from lauf.domain.versioning.models import VersionedEntity


class FlowStatus(str, Enum):
    DRAFT = "Draft"
    ACTIVE = "Active"
    ARCHIVED = "Archived"


class ContentStatus(str, Enum):
    DRAFT = "Draft"
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ComponentType(str, Enum):
    ARTICLE = "Article"
    VIDEO = "Video"
    QUIZ = "Quiz"
    TASK = "Task"
    SURVEY = "Survey"
    FILE = "File"
    LINK = "Link"
    INTERACTIVE = "Interactive"


# Types completed by answering, scored against ``passing_score``
SCORED_TYPES = {ComponentType.QUIZ, ComponentType.SURVEY, ComponentType.TASK, ComponentType.INTERACTIVE}
# Types completed by reading / watching / opening
PASSIVE_TYPES = {ComponentType.ARTICLE, ComponentType.VIDEO, ComponentType.FILE, ComponentType.LINK}


@dataclass
class FlowSettings:
    allow_skipping: bool = False
    require_sequential_completion: bool = True
    max_attempts: Optional[int] = None
    time_to_complete_working_days: Optional[int] = None
    allow_retry: bool = False
    allow_pause: bool = True
    show_progress: bool = True
    send_reminders: bool = True
    additional: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "FlowSettings":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict:
        return {
            "allow_skipping": self.allow_skipping,
            "require_sequential_completion": self.require_sequential_completion,
            "max_attempts": self.max_attempts,
            "time_to_complete_working_days": self.time_to_complete_working_days,
            "allow_retry": self.allow_retry,
            "allow_pause": self.allow_pause,
            "show_progress": self.show_progress,
            "send_reminders": self.send_reminders,
            "additional": dict(self.additional),
        }


@dataclass
class FlowVersion(VersionedEntity):
    title: str = ""
    description: str = ""
    category: str = ""
    tags: List[str] = field(default_factory=list)
    status: FlowStatus = FlowStatus.DRAFT
    priority: int = 5
    is_required: bool = False
    created_by: str = ""
    settings: FlowSettings = field(default_factory=FlowSettings)

    entity_name = "Flow"

    @property
    def flow_id(self) -> str:
        return self.original_id

    def _reset_on_new_version(self) -> dict:
        return {"status": FlowStatus.DRAFT}

    def on_activated(self, now: datetime) -> None:
        self.status = FlowStatus.ACTIVE

    def on_deactivated(self, now: datetime) -> None:
        self.status = FlowStatus.ARCHIVED


@dataclass
class FlowStepVersion(VersionedEntity):
    flow_version_id: str = ""
    order: int = 1
    title: str = ""
    description: str = ""
    status: ContentStatus = ContentStatus.DRAFT

    entity_name = "FlowStep"

    def _reset_on_new_version(self) -> dict:
        return {"status": ContentStatus.DRAFT}

    def on_activated(self, now: datetime) -> None:
        self.status = ContentStatus.ACTIVE

    def on_deactivated(self, now: datetime) -> None:
        self.status = ContentStatus.INACTIVE


@dataclass
class ComponentVersion(VersionedEntity):
    step_version_id: str = ""
    order: int = 1
    title: str = ""
    description: str = ""
    component_type: ComponentType = ComponentType.ARTICLE
    status: ContentStatus = ContentStatus.DRAFT
    is_required: bool = True
    estimated_duration_minutes: int = 15
    settings: Dict[str, Any] = field(default_factory=dict)

    entity_name = "Component"

    def _reset_on_new_version(self) -> dict:
        return {"status": ContentStatus.DRAFT}

    def on_activated(self, now: datetime) -> None:
        self.status = ContentStatus.ACTIVE

    def on_deactivated(self, now: datetime) -> None:
        self.status = ContentStatus.INACTIVE

    @property
    def passing_score(self) -> Optional[int]:
        if "passing_score" in self.settings:
            return self.settings["passing_score"]
        if self.component_type in (ComponentType.QUIZ, ComponentType.SURVEY):
            return 80
        return None

    @property
    def max_attempts(self) -> Optional[int]:
        return self.settings.get("max_attempts")


@dataclass
class StepNode:
    step: FlowStepVersion
    components: List[ComponentVersion] = field(default_factory=list)

    @property
    def required_components(self) -> List[ComponentVersion]:
        return [c for c in self.components if c.is_required]

    @property
    def total_components(self) -> int:
        return len(self.components)


@dataclass
class FlowSnapshot:
    """A flow version with its owned steps and components, ordered for traversal."""

    flow: FlowVersion
    steps: List[StepNode] = field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def estimated_duration_minutes(self) -> int:
        return sum(c.estimated_duration_minutes for node in self.steps for c in node.components)

    def components(self) -> List[ComponentVersion]:
        return [c for node in self.steps for c in node.components]

    def find_component(self, component_version_id: str) -> Optional[tuple[StepNode, ComponentVersion]]:
        for node in self.steps:
            for component in node.components:
                if component.id == component_version_id:
                    return node, component
        return None

    def step_index(self, step_version_id: str) -> int:
        for index, node in enumerate(self.steps):
            if node.step.id == step_version_id:
                return index
        return -1
