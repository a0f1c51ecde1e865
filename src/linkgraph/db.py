"""SQLite connections for the store file: one writer, read-only readers."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


def get_conn(db_path: Path) -> sqlite3.Connection:
    """Open the store file for writing with WAL mode and foreign key enforcement.

    The connection may be shared between threads; callers serialize writes.
    A 0-byte store file is rejected up front, which gives a clear error
    instead of an opaque "disk I/O error" on the first PRAGMA.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    if db_path.exists() and db_path.stat().st_size == 0:
        msg = (
            f"SQLite DB is empty (0 bytes): {db_path}\n"
            f"Fix: rm {db_path}* && lg sync --rebuild"
        )
        raise sqlite3.OperationalError(msg)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
    except sqlite3.OperationalError as exc:
        conn.close()
        raise sqlite3.OperationalError(
            f"Failed to open DB {db_path} — may be corrupt.\n"
            f"Fix: rm {db_path}* && lg sync --rebuild\n"
            f"Original error: {exc}"
        ) from exc
    return conn


def get_conn_readonly(db_path: Path) -> sqlite3.Connection:
    """Open the store read-only: no write lock, sees only committed state."""
    return sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True, check_same_thread=False)
