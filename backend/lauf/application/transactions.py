"""Optimistic transaction runner: read, validate, write, commit; replay on conflict."""
from __future__ import annotations
import logging
import threading
from typing import Callable, Optional, TypeVar

from lauf.core import config
from lauf.domain.common.errors import ConcurrentModificationError, DomainError, OperationCancelledError
from lauf.domain.common.result import Result
from lauf.persistence.interfaces.errors import ConcurrencyConflict
from lauf.persistence.interfaces.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

T = TypeVar("T")

UnitOfWorkFactory = Callable[[], UnitOfWork]


def run_in_transaction(
    uow_factory: UnitOfWorkFactory,
    work: Callable[[UnitOfWork], Result[T]],
    operation: str,
    retry_limit: Optional[int] = None,
    cancel: Optional[threading.Event] = None,
    on_conflict: Optional[Callable[[ConcurrencyConflict], DomainError]] = None,
) -> Result[T]:
    """
    Run ``work`` inside a fresh unit of work and commit it if it succeeds.

    A failed Result rolls back. A ConcurrencyConflict from any write or from
    the commit replays the whole unit ``retry_limit`` more times against fresh
    state; after that the conflict is returned as ``on_conflict(conflict)``
    (ConcurrentModificationError by default). ``cancel`` is checked just
    before the commit so a cancelled command leaves nothing behind.
    """
    if retry_limit is None:
        retry_limit = config.OPTIMISTIC_RETRY_LIMIT

    attempt = 0
    while True:
        try:
            with uow_factory() as uow:
                result = work(uow)
                if not result.is_success:
                    return result
                if cancel is not None and cancel.is_set():
                    logger.info("%s cancelled before commit", operation)
                    return Result.fail(OperationCancelledError(operation))
                uow.commit()
                return result
        except ConcurrencyConflict as conflict:
            if attempt >= retry_limit:
                logger.warning("%s lost %d optimistic write(s), giving up: %s", operation, attempt + 1, conflict)
                if on_conflict is not None:
                    return Result.fail(on_conflict(conflict))
                return Result.fail(ConcurrentModificationError(conflict.entity, conflict.entity_id))
            attempt += 1
            logger.info("%s hit a write conflict on %s '%s', retrying", operation, conflict.entity, conflict.entity_id)
