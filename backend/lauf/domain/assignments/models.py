"""Flow assignment domain models — pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from lauf.domain.common.clock import new_id, utc_now


class AssignmentStatus(str, Enum):
    ASSIGNED = "Assigned"
    IN_PROGRESS = "InProgress"
    PAUSED = "Paused"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# Statuses that still block a second assignment of the same flow to the same user
OPEN_STATUSES = {AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS, AssignmentStatus.PAUSED}


@dataclass
class FlowAssignment:
    user_id: str
    flow_id: str
    flow_version_id: str  # snapshot reference, never re-pointed
    assigned_by: str
    id: str = field(default_factory=new_id)
    buddy_id: Optional[str] = None
    deadline: Optional[datetime] = None
    notes: Optional[str] = None
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    progress_percent: int = 0
    assigned_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=utc_now)
    revision: int = 0

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        if self.deadline is None or self.status == AssignmentStatus.COMPLETED:
            return False
        return now.date() > self.deadline.date()

    def days_until_deadline(self, now: datetime) -> Optional[int]:
        if self.deadline is None:
            return None
        return (self.deadline.date() - now.date()).days
