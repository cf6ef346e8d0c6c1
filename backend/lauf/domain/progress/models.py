"""Progress domain models — pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from lauf.domain.common.clock import new_id, utc_now


class ProgressStatus(str, Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    SKIPPED = "Skipped"


TERMINAL_STATUSES = {ProgressStatus.COMPLETED, ProgressStatus.SKIPPED}
UNFINISHED_STATUSES = {ProgressStatus.IN_PROGRESS, ProgressStatus.PAUSED}


class InteractionType(str, Enum):
    START_READING = "StartReading"
    FINISH_READING = "FinishReading"
    SUBMIT_TASK_ANSWER = "SubmitTaskAnswer"
    SUBMIT_QUIZ_ANSWER = "SubmitQuizAnswer"
    VIEW = "View"
    SKIP = "Skip"
    RETRY = "Retry"
    PAUSE = "Pause"
    RESUME = "Resume"


@dataclass
class Interaction:
    type: InteractionType
    score: Optional[int] = None
    max_score: Optional[int] = None
    time_spent_seconds: int = 0
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ComponentProgress:
    assignment_id: str
    component_version_id: str
    step_version_id: str
    id: str = field(default_factory=new_id)
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    attempts: int = 0
    time_spent_seconds: int = 0
    score: Optional[int] = None
    max_score: Optional[int] = None
    best_score: Optional[int] = None
    passed: Optional[bool] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress_data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    revision: int = 0

    @property
    def time_spent_minutes(self) -> int:
        return self.time_spent_seconds // 60

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass
class StepProgressView:
    step_version_id: str
    order: int
    title: str
    status: ProgressStatus
    is_unlocked: bool
    completed_required: int
    total_required: int

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED


@dataclass
class FlowProgressView:
    assignment_id: str
    flow_version_id: str
    percent: int
    completed_required: int
    total_required: int
    steps: List[StepProgressView] = field(default_factory=list)
    components: Dict[str, ComponentProgress] = field(default_factory=dict)

    @property
    def is_completed(self) -> bool:
        return all(step.is_completed for step in self.steps)

    @property
    def completed_steps(self) -> int:
        return sum(1 for step in self.steps if step.is_completed)

    def step(self, step_version_id: str) -> Optional[StepProgressView]:
        for view in self.steps:
            if view.step_version_id == step_version_id:
                return view
        return None
