"""Dependency injection container — wires implementations to interfaces."""
from __future__ import annotations
from functools import lru_cache

from lauf.application.assignment_app_service import AssignmentAppService
from lauf.application.event_dispatcher import (
    CompositeEventPublisher,
    EventPublisher,
    LocalEventBus,
    LoggingEventPublisher,
    OutboxDispatcher,
    WebhookEventPublisher,
)
from lauf.application.flow_app_service import FlowAppService
from lauf.application.progress_app_service import ProgressAppService
from lauf.application.transactions import UnitOfWorkFactory
from lauf.core import config
from lauf.persistence.repositories.sqlite.sqlite_unit_of_work import SqliteUnitOfWork


def get_uow_factory() -> UnitOfWorkFactory:
    # the database path is read per unit of work, so tests can repoint it
    return SqliteUnitOfWork


@lru_cache(maxsize=1)
def get_event_bus() -> LocalEventBus:
    return LocalEventBus()


@lru_cache(maxsize=1)
def get_event_publisher() -> EventPublisher:
    publishers = [LoggingEventPublisher(), get_event_bus()]
    if config.EVENT_WEBHOOK_URL:
        publishers.append(WebhookEventPublisher(config.EVENT_WEBHOOK_URL))
    return CompositeEventPublisher(publishers)


@lru_cache(maxsize=1)
def get_outbox_dispatcher() -> OutboxDispatcher:
    return OutboxDispatcher(get_uow_factory(), get_event_publisher())


@lru_cache(maxsize=1)
def get_flow_app_service() -> FlowAppService:
    return FlowAppService(uow_factory=get_uow_factory(), dispatcher=get_outbox_dispatcher())


@lru_cache(maxsize=1)
def get_assignment_app_service() -> AssignmentAppService:
    return AssignmentAppService(uow_factory=get_uow_factory(), dispatcher=get_outbox_dispatcher())


@lru_cache(maxsize=1)
def get_progress_app_service() -> ProgressAppService:
    return ProgressAppService(uow_factory=get_uow_factory(), dispatcher=get_outbox_dispatcher())


def reset() -> None:
    """Drop cached singletons (used by tests after changing config)."""
    for factory in (
        get_event_bus,
        get_event_publisher,
        get_outbox_dispatcher,
        get_flow_app_service,
        get_assignment_app_service,
        get_progress_app_service,
    ):
        factory.cache_clear()
