"""SQLite unit of work: one connection, one explicit transaction."""
from __future__ import annotations
import sqlite3
from typing import Optional

from lauf.persistence.db import get_connection
from lauf.persistence.interfaces.errors import ConcurrencyConflict
from lauf.persistence.interfaces.unit_of_work import UnitOfWork
from lauf.persistence.repositories.sqlite.sqlite_assignment_repository import SqliteAssignmentRepository
from lauf.persistence.repositories.sqlite.sqlite_base import is_lock_error
from lauf.persistence.repositories.sqlite.sqlite_flow_repository import (
    SqliteComponentRepository,
    SqliteFlowRepository,
    SqliteStepRepository,
)
from lauf.persistence.repositories.sqlite.sqlite_outbox_repository import SqliteOutboxRepository
from lauf.persistence.repositories.sqlite.sqlite_progress_repository import SqliteProgressRepository


class SqliteUnitOfWork(UnitOfWork):

    def __init__(self, path: Optional[str] = None):
        super().__init__()
        self._path = path
        self._conn: Optional[sqlite3.Connection] = None

    def _begin(self) -> None:
        self._conn = get_connection(self._path)
        # deferred: the write lock is taken at the first write, so a stale read
        # surfaces as a conflict instead of blocking readers
        self._conn.execute("BEGIN")
        self.flows = SqliteFlowRepository(self._conn)
        self.steps = SqliteStepRepository(self._conn)
        self.components = SqliteComponentRepository(self._conn)
        self.assignments = SqliteAssignmentRepository(self._conn)
        self.progress = SqliteProgressRepository(self._conn)
        self.outbox = SqliteOutboxRepository(self._conn)

    def _commit(self) -> None:
        try:
            self._conn.execute("COMMIT")
        except sqlite3.OperationalError as e:
            if is_lock_error(e):
                raise ConcurrencyConflict("Transaction", "commit") from e
            raise

    def _rollback(self) -> None:
        if self._conn is not None and self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def _close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
