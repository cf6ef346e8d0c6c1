"""Abstract repository interface shared by every versioned entity type."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Generic, List, Optional, TypeVar

from lauf.domain.versioning.models import VersionedEntity

V = TypeVar("V", bound=VersionedEntity)


class VersionedRepository(ABC, Generic[V]):

    @abstractmethod
    def get_by_id(self, version_id: str) -> Optional[V]:
        """Return one version by its version-specific id, or None."""
        ...

    @abstractmethod
    def get_active(self, original_id: str) -> Optional[V]:
        """Return the single active version of a logical entity, or None."""
        ...

    @abstractmethod
    def list_versions(self, original_id: str, after_version: int = 0, limit: Optional[int] = None) -> List[V]:
        """Return versions with version > after_version, ordered by version ASC."""
        ...

    @abstractmethod
    def get_latest_version_number(self, original_id: str) -> int:
        """Return the highest version for a logical entity, or 0 if none."""
        ...

    @abstractmethod
    def add(self, version: V) -> None:
        """Append a new version row. Raises ConcurrencyConflict if (original_id, version) is taken."""
        ...

    @abstractmethod
    def update(self, version: V) -> None:
        """Write back a version conditioned on its revision. Raises ConcurrencyConflict on mismatch."""
        ...
