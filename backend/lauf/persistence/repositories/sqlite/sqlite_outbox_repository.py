"""SQLite implementation of OutboxRepository."""
from __future__ import annotations
import json
import sqlite3
from datetime import datetime
from typing import List, Optional

from lauf.domain.common.clock import from_iso, to_iso
from lauf.domain.events import DomainEvent
from lauf.persistence.interfaces.outbox_repository import OutboxRecord, OutboxRepository
from lauf.persistence.repositories.sqlite.sqlite_base import execute


def _row_to_record(r: sqlite3.Row) -> OutboxRecord:
    return OutboxRecord(
        event_id=r["event_id"],
        event_type=r["event_type"],
        payload=json.loads(r["payload"]),
        occurred_at=from_iso(r["occurred_at"]),
        dispatched_at=from_iso(r["dispatched_at"]),
        attempts=r["attempts"],
        last_error=r["last_error"],
    )


class SqliteOutboxRepository(OutboxRepository):

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def add(self, event: DomainEvent) -> None:
        execute(
            self._conn,
            """
            INSERT INTO outbox_events (event_id, event_type, payload, occurred_at)
            VALUES (?, ?, ?, ?)
            """,
            (event.event_id, event.event_type, json.dumps(event.to_payload()), to_iso(event.occurred_at)),
            "OutboxEvent",
            event.event_id,
        )

    def list_pending(self, limit: int = 100, max_attempts: Optional[int] = None) -> List[OutboxRecord]:
        if max_attempts is None:
            rows = self._conn.execute(
                "SELECT * FROM outbox_events WHERE dispatched_at IS NULL ORDER BY seq ASC LIMIT ?",
                (limit,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                """
                SELECT * FROM outbox_events
                WHERE dispatched_at IS NULL AND attempts < ?
                ORDER BY seq ASC LIMIT ?
                """,
                (max_attempts, limit),
            ).fetchall()
        return [_row_to_record(r) for r in rows]

    def list_dead_letters(self, max_attempts: int) -> List[OutboxRecord]:
        rows = self._conn.execute(
            "SELECT * FROM outbox_events WHERE dispatched_at IS NULL AND attempts >= ? ORDER BY seq ASC",
            (max_attempts,),
        ).fetchall()
        return [_row_to_record(r) for r in rows]

    def mark_dispatched(self, event_id: str, at: datetime) -> None:
        execute(
            self._conn,
            """
            UPDATE outbox_events SET dispatched_at = ?, attempts = attempts + 1, last_error = NULL
            WHERE event_id = ? AND dispatched_at IS NULL
            """,
            (to_iso(at), event_id),
            "OutboxEvent",
            event_id,
        )

    def record_failure(self, event_id: str, error: str) -> None:
        execute(
            self._conn,
            "UPDATE outbox_events SET attempts = attempts + 1, last_error = ? WHERE event_id = ? AND dispatched_at IS NULL",
            (error[:500], event_id),
            "OutboxEvent",
            event_id,
        )
