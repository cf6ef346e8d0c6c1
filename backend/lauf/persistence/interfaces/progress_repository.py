"""Abstract repository interface for component progress rows."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List, Optional

from lauf.domain.progress.models import ComponentProgress


class ProgressRepository(ABC):

    @abstractmethod
    def get(self, assignment_id: str, component_version_id: str) -> Optional[ComponentProgress]:
        ...

    @abstractmethod
    def list_by_assignment(self, assignment_id: str) -> List[ComponentProgress]:
        ...

    @abstractmethod
    def add(self, progress: ComponentProgress) -> None:
        """Insert the first row for (assignment, component). Raises ConcurrencyConflict if one exists."""
        ...

    @abstractmethod
    def update(self, progress: ComponentProgress) -> None:
        """Write back conditioned on revision. Raises ConcurrencyConflict on mismatch."""
        ...
