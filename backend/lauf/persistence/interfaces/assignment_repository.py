"""Abstract repository interface for flow assignments."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional

from lauf.domain.assignments.models import FlowAssignment


class AssignmentRepository(ABC):

    @abstractmethod
    def get_by_id(self, assignment_id: str) -> Optional[FlowAssignment]:
        ...

    @abstractmethod
    def list_by_user(self, user_id: str) -> List[FlowAssignment]:
        """Return a user's assignments, newest first."""
        ...

    @abstractmethod
    def list_by_user_and_flow(self, user_id: str, flow_id: str) -> List[FlowAssignment]:
        ...

    @abstractmethod
    def add(self, assignment: FlowAssignment) -> None:
        ...

    @abstractmethod
    def update(self, assignment: FlowAssignment) -> None:
        """Write back conditioned on revision. The snapshot reference is never rewritten."""
        ...
