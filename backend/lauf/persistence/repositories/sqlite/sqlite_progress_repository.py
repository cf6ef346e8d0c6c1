"""SQLite implementation of ProgressRepository."""
from __future__ import annotations
import json
import sqlite3
from typing import List, Optional

from lauf.domain.common.clock import from_iso, to_iso
from lauf.domain.progress.models import ComponentProgress, ProgressStatus
from lauf.persistence.interfaces.errors import ConcurrencyConflict
from lauf.persistence.interfaces.progress_repository import ProgressRepository
from lauf.persistence.repositories.sqlite.sqlite_base import execute


def _row_to_progress(row) -> ComponentProgress:
    return ComponentProgress(
        id=row["id"],
        assignment_id=row["assignment_id"],
        component_version_id=row["component_version_id"],
        step_version_id=row["step_version_id"],
        status=ProgressStatus(row["status"]),
        attempts=row["attempts"],
        time_spent_seconds=row["time_spent_seconds"],
        score=row["score"],
        max_score=row["max_score"],
        best_score=row["best_score"],
        passed=None if row["passed"] is None else bool(row["passed"]),
        started_at=from_iso(row["started_at"]),
        completed_at=from_iso(row["completed_at"]),
        progress_data=json.loads(row["progress_data"] or "{}"),
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        revision=row["revision"],
    )


def _progress_params(progress: ComponentProgress) -> dict:
    return {
        "id": progress.id,
        "assignment_id": progress.assignment_id,
        "component_version_id": progress.component_version_id,
        "step_version_id": progress.step_version_id,
        "status": progress.status.value,
        "attempts": progress.attempts,
        "time_spent_seconds": progress.time_spent_seconds,
        "score": progress.score,
        "max_score": progress.max_score,
        "best_score": progress.best_score,
        "passed": None if progress.passed is None else int(progress.passed),
        "started_at": to_iso(progress.started_at),
        "completed_at": to_iso(progress.completed_at),
        "progress_data": json.dumps(progress.progress_data),
        "created_at": to_iso(progress.created_at),
        "updated_at": to_iso(progress.updated_at),
        "revision": progress.revision,
    }


class SqliteProgressRepository(ProgressRepository):

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, assignment_id: str, component_version_id: str) -> Optional[ComponentProgress]:
        row = self._conn.execute(
            "SELECT * FROM component_progress WHERE assignment_id = ? AND component_version_id = ?",
            (assignment_id, component_version_id),
        ).fetchone()
        return _row_to_progress(row) if row else None

    def list_by_assignment(self, assignment_id: str) -> List[ComponentProgress]:
        rows = self._conn.execute(
            "SELECT * FROM component_progress WHERE assignment_id = ? ORDER BY created_at ASC",
            (assignment_id,),
        ).fetchall()
        return [_row_to_progress(r) for r in rows]

    def add(self, progress: ComponentProgress) -> None:
        execute(
            self._conn,
            """
            INSERT INTO component_progress (
                id, assignment_id, component_version_id, step_version_id, status,
                attempts, time_spent_seconds, score, max_score, best_score, passed,
                started_at, completed_at, progress_data, created_at, updated_at, revision
            ) VALUES (
                :id, :assignment_id, :component_version_id, :step_version_id, :status,
                :attempts, :time_spent_seconds, :score, :max_score, :best_score, :passed,
                :started_at, :completed_at, :progress_data, :created_at, :updated_at, :revision
            )
            """,
            _progress_params(progress),
            "ComponentProgress",
            progress.component_version_id,
        )

    def update(self, progress: ComponentProgress) -> None:
        cur = execute(
            self._conn,
            """
            UPDATE component_progress SET
                status             = :status,
                attempts           = :attempts,
                time_spent_seconds = :time_spent_seconds,
                score              = :score,
                max_score          = :max_score,
                best_score         = :best_score,
                passed             = :passed,
                started_at         = :started_at,
                completed_at       = :completed_at,
                progress_data      = :progress_data,
                updated_at         = :updated_at,
                revision           = revision + 1
            WHERE id = :id AND revision = :revision
            """,
            _progress_params(progress),
            "ComponentProgress",
            progress.id,
        )
        if cur.rowcount == 0:
            raise ConcurrencyConflict("ComponentProgress", progress.id)
        progress.revision += 1
