"""Unit of work: the atomicity boundary for every command."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import List

from lauf.domain.events import DomainEvent
from lauf.persistence.interfaces.assignment_repository import AssignmentRepository
from lauf.persistence.interfaces.flow_repository import ComponentRepository, FlowRepository, StepRepository
from lauf.persistence.interfaces.outbox_repository import OutboxRepository
from lauf.persistence.interfaces.progress_repository import ProgressRepository


class UnitOfWork(ABC):
    """
    Usage::

        with uow_factory() as uow:
            ...read, validate, write...
            uow.collect(event)
            uow.commit()

    Leaving the block without ``commit()`` rolls everything back, collected
    events included. Collected events are written to the outbox inside the
    same transaction as the state they describe.
    """

    flows: FlowRepository
    steps: StepRepository
    components: ComponentRepository
    assignments: AssignmentRepository
    progress: ProgressRepository
    outbox: OutboxRepository

    def __init__(self) -> None:
        self._events: List[DomainEvent] = []
        self.committed = False

    def collect(self, event: DomainEvent) -> None:
        self._events.append(event)

    @property
    def pending_events(self) -> List[DomainEvent]:
        return list(self._events)

    def commit(self) -> None:
        for event in self._events:
            self.outbox.add(event)
        self._commit()
        self._events.clear()
        self.committed = True

    def rollback(self) -> None:
        self._events.clear()
        self._rollback()

    def __enter__(self) -> "UnitOfWork":
        self._begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.committed:
            self.rollback()
        self._close()

    @abstractmethod
    def _begin(self) -> None:
        ...

    @abstractmethod
    def _commit(self) -> None:
        ...

    @abstractmethod
    def _rollback(self) -> None:
        ...

    @abstractmethod
    def _close(self) -> None:
        ...
