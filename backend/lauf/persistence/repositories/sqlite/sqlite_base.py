"""Shared SQLite helpers: conflict translation and the generic versioned table mapping."""
from __future__ import annotations
import sqlite3
from typing import Any, Dict, List, Optional

from lauf.domain.common.clock import from_iso, to_iso
from lauf.persistence.interfaces.errors import ConcurrencyConflict
from lauf.persistence.interfaces.versioned_repository import V, VersionedRepository

BASE_COLUMNS = ("id", "original_id", "version", "is_active", "created_at", "updated_at", "activated_at", "revision")


def execute(conn: sqlite3.Connection, sql: str, params: Any, entity: str, entity_id: str) -> sqlite3.Cursor:
    """Run a write, turning lost races into ConcurrencyConflict."""
    try:
        return conn.execute(sql, params)
    except sqlite3.IntegrityError as e:
        if "UNIQUE" in str(e):
            raise ConcurrencyConflict(entity, entity_id) from e
        raise
    except sqlite3.OperationalError as e:
        if is_lock_error(e):
            raise ConcurrencyConflict(entity, entity_id) from e
        raise


def is_lock_error(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


class SqliteVersionedRepository(VersionedRepository[V]):
    """Generic mapping of a VersionedEntity subclass onto one table."""

    table: str = ""
    entity: str = ""
    content_columns: tuple = ()

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    # ------------------------------------------------------------------
    # Per-type mapping
    # ------------------------------------------------------------------
    def _content_to_row(self, version: V) -> Dict[str, Any]:
        raise NotImplementedError

    def _from_row(self, row: sqlite3.Row) -> V:
        raise NotImplementedError

    @staticmethod
    def _base_fields(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "original_id": row["original_id"],
            "version": row["version"],
            "is_active": bool(row["is_active"]),
            "created_at": from_iso(row["created_at"]),
            "updated_at": from_iso(row["updated_at"]),
            "activated_at": from_iso(row["activated_at"]),
            "revision": row["revision"],
        }

    def _to_row(self, version: V) -> Dict[str, Any]:
        row = {
            "id": version.id,
            "original_id": version.original_id,
            "version": version.version,
            "is_active": int(version.is_active),
            "created_at": to_iso(version.created_at),
            "updated_at": to_iso(version.updated_at),
            "activated_at": to_iso(version.activated_at),
            "revision": version.revision,
        }
        row.update(self._content_to_row(version))
        return row

    # ------------------------------------------------------------------
    # VersionedRepository
    # ------------------------------------------------------------------
    def get_by_id(self, version_id: str) -> Optional[V]:
        row = self._conn.execute(f"SELECT * FROM {self.table} WHERE id = ?", (version_id,)).fetchone()
        return self._from_row(row) if row else None

    def get_active(self, original_id: str) -> Optional[V]:
        row = self._conn.execute(
            f"SELECT * FROM {self.table} WHERE original_id = ? AND is_active = 1",
            (original_id,),
        ).fetchone()
        return self._from_row(row) if row else None

    def list_versions(self, original_id: str, after_version: int = 0, limit: Optional[int] = None) -> List[V]:
        sql = f"SELECT * FROM {self.table} WHERE original_id = ? AND version > ? ORDER BY version ASC"
        params: list = [original_id, after_version]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [self._from_row(r) for r in self._conn.execute(sql, params).fetchall()]

    def get_latest_version_number(self, original_id: str) -> int:
        row = self._conn.execute(
            f"SELECT MAX(version) FROM {self.table} WHERE original_id = ?",
            (original_id,),
        ).fetchone()
        return row[0] if row and row[0] is not None else 0

    def add(self, version: V) -> None:
        row = self._to_row(version)
        columns = ", ".join(row)
        placeholders = ", ".join(f":{c}" for c in row)
        execute(
            self._conn,
            f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})",
            row,
            self.entity,
            version.original_id,
        )

    def update(self, version: V) -> None:
        row = self._to_row(version)
        row["expected_revision"] = version.revision
        assignments = ", ".join(f"{c} = :{c}" for c in row if c not in ("id", "revision", "expected_revision"))
        cur = execute(
            self._conn,
            f"""
            UPDATE {self.table}
            SET {assignments}, revision = revision + 1
            WHERE id = :id AND revision = :expected_revision
            """,
            row,
            self.entity,
            version.id,
        )
        if cur.rowcount == 0:
            raise ConcurrencyConflict(self.entity, version.id)
        version.revision += 1
