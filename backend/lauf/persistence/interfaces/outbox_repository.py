"""Abstract repository interface for the transactional outbox."""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from lauf.domain.events import DomainEvent


@dataclass
class OutboxRecord:
    event_id: str
    event_type: str
    payload: dict
    occurred_at: datetime
    dispatched_at: Optional[datetime] = None
    attempts: int = 0
    last_error: Optional[str] = None


class OutboxRepository(ABC):

    @abstractmethod
    def add(self, event: DomainEvent) -> None:
        """Store an event inside the current transaction."""
        ...

    @abstractmethod
    def list_pending(self, limit: int = 100, max_attempts: Optional[int] = None) -> List[OutboxRecord]:
        """Return undispatched events in insertion order, leaving out those that failed ``max_attempts`` times."""
        ...

    @abstractmethod
    def list_dead_letters(self, max_attempts: int) -> List[OutboxRecord]:
        """Undispatched events that have failed ``max_attempts`` times or more."""
        ...

    @abstractmethod
    def mark_dispatched(self, event_id: str, at: datetime) -> None:
        ...

    @abstractmethod
    def record_failure(self, event_id: str, error: str) -> None:
        ...
