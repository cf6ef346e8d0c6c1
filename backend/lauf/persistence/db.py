"""SQLite connection + schema initialisation."""
from __future__ import annotations
import logging
import os
import sqlite3
import uuid
from typing import Optional

import bcrypt

from lauf.core import config
from lauf.domain.common.clock import to_iso, utc_now

logger = logging.getLogger(__name__)

_MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), "..", "..", "migrations")


def get_connection(path: Optional[str] = None) -> sqlite3.Connection:
    # isolation_level=None: transactions are opened explicitly by the unit of work
    conn = sqlite3.connect(
        path or config.DATABASE_PATH,
        timeout=config.SQLITE_BUSY_TIMEOUT,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(path: Optional[str] = None) -> None:
    """Run all migration SQL files against the database."""
    path = path or config.DATABASE_PATH
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    migrations = sorted(f for f in os.listdir(_MIGRATIONS_DIR) if f.endswith(".sql"))
    conn = get_connection(path)
    try:
        for name in migrations:
            with open(os.path.join(_MIGRATIONS_DIR, name), "r", encoding="utf-8") as f:
                conn.executescript(f.read())
            logger.debug("Applied migration %s", name)
    finally:
        conn.close()
    _seed_default_user(path)


def _seed_default_user(path: str) -> None:
    """Insert a default admin user using direct bcrypt."""
    conn = get_connection(path)
    try:
        count = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        if count == 0:
            hashed = bcrypt.hashpw(config.DEFAULT_ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")
            conn.execute(
                """
                INSERT INTO users (id, username, password_hash, role, display_name, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()),
                    config.DEFAULT_ADMIN_USERNAME,
                    hashed,
                    "admin",
                    "Administrator",
                    to_iso(utc_now()),
                ),
            )
            logger.info("Seeded default admin user '%s'", config.DEFAULT_ADMIN_USERNAME)
    finally:
        conn.close()
