"""Event dispatch: drains the transactional outbox to publishers after commit."""
from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Set

import requests

from lauf.application.transactions import UnitOfWorkFactory
from lauf.core import config
from lauf.domain.common.clock import utc_now
from lauf.domain.events import EVENT_TYPES, DomainEvent
from lauf.persistence.interfaces.errors import ConcurrencyConflict
from lauf.persistence.interfaces.outbox_repository import OutboxRecord, OutboxRepository

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


def event_from_record(record: OutboxRecord) -> DomainEvent:
    event_cls = EVENT_TYPES.get(record.event_type)
    if event_cls is None:
        raise ValueError(f"Unknown event type '{record.event_type}'")
    return event_cls.from_payload(record.payload)


class EventPublisher(ABC):
    """Delivers one event to its consumers. Raising means 'try again later'."""

    @abstractmethod
    def publish(self, event: DomainEvent) -> None:
        ...


class LoggingEventPublisher(EventPublisher):

    def publish(self, event: DomainEvent) -> None:
        logger.info("Event %s %s: %s", event.event_type, event.event_id, event.to_payload())


class WebhookEventPublisher(EventPublisher):
    """POSTs each event as JSON to an external consumer (notifications, achievements)."""

    def __init__(self, url: str, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self._url = url
        self._timeout = timeout if timeout is not None else config.EVENT_WEBHOOK_TIMEOUT
        self._session = session or requests.Session()

    def publish(self, event: DomainEvent) -> None:
        res = self._session.post(
            self._url,
            json={
                "event_id": event.event_id,
                "event_type": event.event_type,
                "version": event.version,
                "payload": event.to_payload(),
            },
            headers={"Content-Type": "application/json", "Idempotency-Key": event.event_id},
            timeout=self._timeout,
        )
        res.raise_for_status()


class LocalEventBus(EventPublisher):
    """
    In-process fan-out to subscribed handlers.

    Handlers subscribe by event type name, or ``"*"`` for everything. An
    event id that was already delivered is ignored, so a redelivered outbox
    row reaches each handler once.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._seen: Set[str] = set()

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def publish(self, event: DomainEvent) -> None:
        if event.event_id in self._seen:
            logger.debug("Skipping duplicate delivery of %s", event.event_id)
            return
        for handler in self._handlers.get(event.event_type, []) + self._handlers.get("*", []):
            handler(event)
        self._seen.add(event.event_id)


class CompositeEventPublisher(EventPublisher):

    def __init__(self, publishers: Iterable[EventPublisher]):
        self._publishers = list(publishers)

    def publish(self, event: DomainEvent) -> None:
        for publisher in self._publishers:
            publisher.publish(event)


class OutboxDispatcher:
    """
    Hands committed outbox events to a publisher and marks them dispatched.

    Only rows that reached the outbox through a committed unit of work are
    ever read here, so observers never see events for rolled-back state.
    Publishing happens outside any transaction; each row is then settled in
    its own short unit of work. A failed publish leaves the row pending for
    the next drain until it has failed ``OUTBOX_MAX_ATTEMPTS`` times.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        publisher: EventPublisher,
        batch_size: int = 100,
        max_attempts: Optional[int] = None,
    ):
        self._uow_factory = uow_factory
        self._publisher = publisher
        self._batch_size = batch_size
        self._max_attempts = max_attempts

    @property
    def max_attempts(self) -> int:
        return self._max_attempts if self._max_attempts is not None else config.OUTBOX_MAX_ATTEMPTS

    def drain(self) -> int:
        """Publish every pending event once; returns how many were delivered."""
        with self._uow_factory() as uow:
            pending = uow.outbox.list_pending(self._batch_size, self.max_attempts)

        delivered = 0
        for record in pending:
            try:
                self._publisher.publish(event_from_record(record))
            except Exception as e:
                logger.exception("Dispatch of %s %s failed", record.event_type, record.event_id)
                error = str(e)
                self._settle(record, lambda outbox: outbox.record_failure(record.event_id, error))
                if record.attempts + 1 >= self.max_attempts:
                    logger.error("Event %s %s dead-lettered after %d attempts",
                                 record.event_type, record.event_id, record.attempts + 1)
                continue
            if self._settle(record, lambda outbox: outbox.mark_dispatched(record.event_id, utc_now())):
                delivered += 1
        return delivered

    def dead_letters(self) -> List[OutboxRecord]:
        with self._uow_factory() as uow:
            return uow.outbox.list_dead_letters(self.max_attempts)

    def _settle(self, record: OutboxRecord, write: Callable[[OutboxRepository], None]) -> bool:
        try:
            with self._uow_factory() as uow:
                write(uow.outbox)
                uow.commit()
        except ConcurrencyConflict:
            # the row stays pending and is redelivered; consumers dedupe by event id
            logger.warning("Outbox row %s lost a write race and stays pending", record.event_id)
            return False
        return True
