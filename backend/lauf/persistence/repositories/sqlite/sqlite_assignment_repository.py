"""SQLite implementation of AssignmentRepository."""
from __future__ import annotations
import sqlite3
from typing import List, Optional

from lauf.domain.assignments.models import AssignmentStatus, FlowAssignment
from lauf.domain.common.clock import from_iso, to_iso
from lauf.persistence.interfaces.assignment_repository import AssignmentRepository
from lauf.persistence.interfaces.errors import ConcurrencyConflict
from lauf.persistence.repositories.sqlite.sqlite_base import execute


def _row_to_assignment(row) -> FlowAssignment:
    return FlowAssignment(
        id=row["id"],
        user_id=row["user_id"],
        flow_id=row["flow_id"],
        flow_version_id=row["flow_version_id"],
        assigned_by=row["assigned_by"],
        buddy_id=row["buddy_id"],
        deadline=from_iso(row["deadline"]),
        notes=row["notes"],
        status=AssignmentStatus(row["status"]),
        progress_percent=row["progress_percent"],
        assigned_at=from_iso(row["assigned_at"]),
        started_at=from_iso(row["started_at"]),
        completed_at=from_iso(row["completed_at"]),
        updated_at=from_iso(row["updated_at"]),
        revision=row["revision"],
    )


class SqliteAssignmentRepository(AssignmentRepository):

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get_by_id(self, assignment_id: str) -> Optional[FlowAssignment]:
        row = self._conn.execute("SELECT * FROM flow_assignments WHERE id = ?", (assignment_id,)).fetchone()
        return _row_to_assignment(row) if row else None

    def list_by_user(self, user_id: str) -> List[FlowAssignment]:
        rows = self._conn.execute(
            "SELECT * FROM flow_assignments WHERE user_id = ? ORDER BY assigned_at DESC",
            (user_id,),
        ).fetchall()
        return [_row_to_assignment(r) for r in rows]

    def list_by_user_and_flow(self, user_id: str, flow_id: str) -> List[FlowAssignment]:
        rows = self._conn.execute(
            "SELECT * FROM flow_assignments WHERE user_id = ? AND flow_id = ? ORDER BY assigned_at DESC",
            (user_id, flow_id),
        ).fetchall()
        return [_row_to_assignment(r) for r in rows]

    def add(self, assignment: FlowAssignment) -> None:
        execute(
            self._conn,
            """
            INSERT INTO flow_assignments (
                id, user_id, flow_id, flow_version_id, assigned_by, buddy_id,
                deadline, notes, status, progress_percent,
                assigned_at, started_at, completed_at, updated_at, revision
            ) VALUES (
                :id, :user_id, :flow_id, :flow_version_id, :assigned_by, :buddy_id,
                :deadline, :notes, :status, :progress_percent,
                :assigned_at, :started_at, :completed_at, :updated_at, :revision
            )
            """,
            {
                "id": assignment.id,
                "user_id": assignment.user_id,
                "flow_id": assignment.flow_id,
                "flow_version_id": assignment.flow_version_id,
                "assigned_by": assignment.assigned_by,
                "buddy_id": assignment.buddy_id,
                "deadline": to_iso(assignment.deadline),
                "notes": assignment.notes,
                "status": assignment.status.value,
                "progress_percent": assignment.progress_percent,
                "assigned_at": to_iso(assignment.assigned_at),
                "started_at": to_iso(assignment.started_at),
                "completed_at": to_iso(assignment.completed_at),
                "updated_at": to_iso(assignment.updated_at),
                "revision": assignment.revision,
            },
            "FlowAssignment",
            assignment.id,
        )

    def update(self, assignment: FlowAssignment) -> None:
        # flow_version_id is deliberately absent: the snapshot binding is write-once
        cur = execute(
            self._conn,
            """
            UPDATE flow_assignments SET
                buddy_id         = :buddy_id,
                deadline         = :deadline,
                notes            = :notes,
                status           = :status,
                progress_percent = :progress_percent,
                started_at       = :started_at,
                completed_at     = :completed_at,
                updated_at       = :updated_at,
                revision         = revision + 1
            WHERE id = :id AND revision = :revision
            """,
            {
                "id": assignment.id,
                "buddy_id": assignment.buddy_id,
                "deadline": to_iso(assignment.deadline),
                "notes": assignment.notes,
                "status": assignment.status.value,
                "progress_percent": assignment.progress_percent,
                "started_at": to_iso(assignment.started_at),
                "completed_at": to_iso(assignment.completed_at),
                "updated_at": to_iso(assignment.updated_at),
                "revision": assignment.revision,
            },
            "FlowAssignment",
            assignment.id,
        )
        if cur.rowcount == 0:
            raise ConcurrencyConflict("FlowAssignment", assignment.id)
        assignment.revision += 1
