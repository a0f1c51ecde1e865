"""Transactional store for documents, titles, refs and links.

One SQLite file per corpus root. Every mutation runs inside a single
transaction under the store's write lock; reads go through per-thread
read-only connections and therefore only ever observe committed state.

Tables:
    documents(identity PK, digest, synced_at)
    titles(identity PK -> documents, titles JSON array)
    refs(ref PK, identity -> documents)
    links(source -> documents, target, properties JSON)

Titles, refs and links cascade from their document row, so a link can
never outlive the document it was extracted from. Link targets are not
constrained: a target may name a document that is not indexed (yet).
"""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from linkgraph.db import get_conn, get_conn_readonly
from linkgraph.errors import (
    ConstraintViolationError,
    NotInitializedError,
    SchemaVersionMismatchError,
)
from linkgraph.models import Backlink, Document, ExtractionResult, Link, LinkProperties, Ref, Title

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from pathlib import Path

    from linkgraph.models import ExtractedLink

logger = logging.getLogger("linkgraph.store")

SCHEMA_VERSION = 2

DUPLICATE_REF_POLICIES = ("overwrite", "reject")

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS documents (
        identity TEXT PRIMARY KEY,
        digest TEXT NOT NULL,
        synced_at TEXT
    );

    CREATE TABLE IF NOT EXISTS titles (
        identity TEXT PRIMARY KEY REFERENCES documents(identity) ON DELETE CASCADE,
        titles TEXT NOT NULL             -- JSON array, primary title first
    );

    CREATE TABLE IF NOT EXISTS refs (
        ref TEXT PRIMARY KEY,
        identity TEXT NOT NULL REFERENCES documents(identity) ON DELETE CASCADE
    );
    CREATE INDEX IF NOT EXISTS refs_identity ON refs(identity);

    CREATE TABLE IF NOT EXISTS links (
        source TEXT NOT NULL REFERENCES documents(identity) ON DELETE CASCADE,
        target TEXT NOT NULL,
        properties TEXT                  -- JSON {"preview": ..., "offset": ...}
    );
    CREATE INDEX IF NOT EXISTS links_source ON links(source);
    CREATE INDEX IF NOT EXISTS links_target ON links(target);
"""


def _migrate_v1(conn: sqlite3.Connection) -> None:
    # v1 did not record when a document was last synchronized.
    conn.execute("ALTER TABLE documents ADD COLUMN synced_at TEXT")


# version found on disk -> step that brings it to version + 1
_MIGRATIONS: dict[int, Callable[[sqlite3.Connection], None]] = {
    1: _migrate_v1,
}


def _now() -> str:
    return datetime.now(UTC).isoformat()


class Store:
    """Handle on one store file. Call open() before use and close() when done."""

    def __init__(self, db_path: Path, *, on_duplicate_ref: str = "overwrite") -> None:
        if on_duplicate_ref not in DUPLICATE_REF_POLICIES:
            msg = f"on_duplicate_ref must be one of {DUPLICATE_REF_POLICIES}, got {on_duplicate_ref!r}"
            raise ValueError(msg)
        self.db_path = db_path
        self.on_duplicate_ref = on_duplicate_ref
        self._conn: sqlite3.Connection | None = None
        self._write_lock = threading.RLock()
        self._readers_lock = threading.Lock()
        self._readers: list[sqlite3.Connection] = []
        self._local = threading.local()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> Store:
        """Connect, then create or migrate the schema. Idempotent."""
        if self._conn is not None:
            return self
        conn = get_conn(self.db_path)
        try:
            self._ensure_schema(conn)
        except BaseException:
            conn.close()
            raise
        self._conn = conn
        logger.debug("store opened: %s", self.db_path)
        return self

    def close(self) -> None:
        """Release the writer and every reader connection. Safe to call repeatedly."""
        with self._readers_lock:
            readers, self._readers = self._readers, []
        for reader in readers:
            with contextlib.suppress(sqlite3.Error):
                reader.close()
        self._local = threading.local()
        with self._write_lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()
            logger.debug("store closed: %s", self.db_path)

    def __enter__(self) -> Store:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise SchemaVersionMismatchError(version, SCHEMA_VERSION)
        if version == 0:
            conn.executescript(_SCHEMA)
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            conn.commit()
            return
        while version < SCHEMA_VERSION:
            step = _MIGRATIONS.get(version)
            if step is None:
                raise SchemaVersionMismatchError(version, SCHEMA_VERSION)
            logger.info("migrating store %s from schema v%d", self.db_path, version)
            with conn:
                step(conn)
                conn.execute(f"PRAGMA user_version = {version + 1}")
            version += 1
        # indexes added after v1 are created idempotently
        conn.executescript(_SCHEMA)
        conn.commit()

    def schema_version(self) -> int:
        return self._reader().execute("PRAGMA user_version").fetchone()[0]

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _require(self) -> sqlite3.Connection:
        if self._conn is None:
            msg = f"store {self.db_path} is not open"
            raise NotInitializedError(msg)
        return self._conn

    @contextlib.contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """One transaction, serialized against every other writer."""
        with self._write_lock:
            conn = self._require()
            try:
                with conn:
                    yield conn
            except sqlite3.IntegrityError as exc:
                raise ConstraintViolationError(str(exc)) from exc

    def _reader(self) -> sqlite3.Connection:
        self._require()
        conn: sqlite3.Connection | None = getattr(self._local, "conn", None)
        if conn is None:
            conn = get_conn_readonly(self.db_path)
            self._local.conn = conn
            with self._readers_lock:
                self._readers.append(conn)
        return conn

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def upsert_document(self, identity: str, digest: str, synced_at: str | None = None) -> None:
        with self._write() as conn:
            self._upsert_document(conn, identity, digest, synced_at or _now())

    def replace_document_data(
        self,
        identity: str,
        titles: Sequence[str],
        ref: str | None,
        links: Sequence[ExtractedLink],
    ) -> None:
        """Swap every title/ref/outbound link row of identity for the given set."""
        with self._write() as conn:
            self._replace_document_data(conn, identity, titles, ref, links)

    def index_document(
        self,
        identity: str,
        digest: str,
        extraction: ExtractionResult,
        synced_at: str | None = None,
    ) -> None:
        """upsert_document + replace_document_data as one transaction."""
        with self._write() as conn:
            self._upsert_document(conn, identity, digest, synced_at or _now())
            self._replace_document_data(conn, identity, extraction.titles, extraction.ref, extraction.links)

    def clear_document(self, identity: str) -> bool:
        """Delete identity's document row and everything it owns. Returns True if a row existed."""
        with self._write() as conn:
            conn.execute("DELETE FROM links WHERE source = ?", (identity,))
            conn.execute("DELETE FROM titles WHERE identity = ?", (identity,))
            conn.execute("DELETE FROM refs WHERE identity = ?", (identity,))
            cur = conn.execute("DELETE FROM documents WHERE identity = ?", (identity,))
            return cur.rowcount > 0

    def remove_links_to(self, identity: str) -> int:
        """Delete every link whose target is identity. Returns the number removed.

        The sources no longer match their files, so their digests are
        cleared and the next full_sync re-extracts them.
        """
        with self._write() as conn:
            conn.execute(
                "UPDATE documents SET digest = '' "
                "WHERE identity IN (SELECT source FROM links WHERE target = ?)",
                (identity,),
            )
            cur = conn.execute("DELETE FROM links WHERE target = ?", (identity,))
            return cur.rowcount

    def link_sources(self, identity: str) -> list[str]:
        """Distinct sources with a link to identity, whether or not identity is indexed."""
        rows = self._reader().execute(
            "SELECT DISTINCT source FROM links WHERE target = ? ORDER BY source", (identity,)
        ).fetchall()
        return [r[0] for r in rows]

    def reset(self) -> None:
        """Drop all rows; the schema stays."""
        with self._write() as conn:
            conn.execute("DELETE FROM links")
            conn.execute("DELETE FROM titles")
            conn.execute("DELETE FROM refs")
            conn.execute("DELETE FROM documents")

    def _upsert_document(self, conn: sqlite3.Connection, identity: str, digest: str, synced_at: str) -> None:
        conn.execute(
            "INSERT INTO documents(identity, digest, synced_at) VALUES (?, ?, ?) "
            "ON CONFLICT(identity) DO UPDATE SET digest = excluded.digest, synced_at = excluded.synced_at",
            (identity, digest, synced_at),
        )

    def _replace_document_data(
        self,
        conn: sqlite3.Connection,
        identity: str,
        titles: Sequence[str],
        ref: str | None,
        links: Sequence[ExtractedLink],
    ) -> None:
        conn.execute("DELETE FROM titles WHERE identity = ?", (identity,))
        conn.execute("DELETE FROM refs WHERE identity = ?", (identity,))
        conn.execute("DELETE FROM links WHERE source = ?", (identity,))

        if titles:
            conn.execute(
                "INSERT INTO titles(identity, titles) VALUES (?, ?)",
                (identity, json.dumps(list(titles))),
            )

        if ref:
            row = conn.execute("SELECT identity FROM refs WHERE ref = ?", (ref,)).fetchone()
            if row is not None:
                if self.on_duplicate_ref == "reject":
                    msg = f"ref {ref!r} is already bound to {row[0]}"
                    raise ConstraintViolationError(msg)
                logger.warning("ref %r rebound from %s to %s", ref, row[0], identity)
                conn.execute("DELETE FROM refs WHERE ref = ?", (ref,))
            conn.execute("INSERT INTO refs(ref, identity) VALUES (?, ?)", (ref, identity))

        conn.executemany(
            "INSERT INTO links(source, target, properties) VALUES (?, ?, ?)",
            [(identity, link.target, link.properties.to_json()) for link in links],
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_documents(self) -> dict[str, str]:
        """Snapshot of identity -> digest."""
        rows = self._reader().execute("SELECT identity, digest FROM documents").fetchall()
        return dict(rows)

    def get_document(self, identity: str) -> Document | None:
        row = self._reader().execute(
            "SELECT identity, digest, synced_at FROM documents WHERE identity = ?", (identity,)
        ).fetchone()
        if row is None:
            return None
        return Document(identity=row[0], digest=row[1], synced_at=row[2] or "")

    def titles_for(self, identity: str) -> list[str]:
        row = self._reader().execute(
            "SELECT titles FROM titles WHERE identity = ?", (identity,)
        ).fetchone()
        return json.loads(row[0]) if row else []

    def find_ref(self, ref: str) -> str | None:
        row = self._reader().execute("SELECT identity FROM refs WHERE ref = ?", (ref,)).fetchone()
        return row[0] if row else None

    def backlinks_to(self, identity: str) -> list[Backlink]:
        """Every link targeting identity, by source then insertion order.

        Links are resolved against the documents table at query time: while
        identity has no document row (deleted, or not created yet) its
        incoming links stay in the store but are not returned here.
        """
        rows = self._reader().execute(
            "SELECT l.source, l.properties FROM links l "
            "JOIN documents d ON d.identity = l.target "
            "WHERE l.target = ? ORDER BY l.source, l.rowid",
            (identity,),
        ).fetchall()
        return [Backlink(source=r[0], properties=LinkProperties.from_json(r[1])) for r in rows]

    def links_from(self, identity: str) -> list[Link]:
        rows = self._reader().execute(
            "SELECT source, target, properties FROM links WHERE source = ? ORDER BY rowid",
            (identity,),
        ).fetchall()
        return [Link(source=r[0], target=r[1], properties=LinkProperties.from_json(r[2])) for r in rows]

    def all_titles(self) -> list[Title]:
        """One entry per document; titles is empty when none were declared."""
        rows = self._reader().execute(
            "SELECT d.identity, t.titles FROM documents d "
            "LEFT JOIN titles t ON t.identity = d.identity ORDER BY d.identity"
        ).fetchall()
        return [Title(identity=r[0], titles=json.loads(r[1]) if r[1] else []) for r in rows]

    def all_refs(self) -> list[Ref]:
        rows = self._reader().execute("SELECT ref, identity FROM refs ORDER BY ref").fetchall()
        return [Ref(ref=r[0], identity=r[1]) for r in rows]

    def all_links(self) -> list[tuple[str, str]]:
        """Distinct (source, target) pairs."""
        return self._reader().execute(
            "SELECT DISTINCT source, target FROM links ORDER BY source, target"
        ).fetchall()

    def dangling_links(self) -> list[Link]:
        rows = self._reader().execute(
            "SELECT l.source, l.target, l.properties FROM links l "
            "LEFT JOIN documents d ON d.identity = l.target "
            "WHERE d.identity IS NULL ORDER BY l.source, l.rowid"
        ).fetchall()
        return [Link(source=r[0], target=r[1], properties=LinkProperties.from_json(r[2])) for r in rows]

    def counts(self) -> dict[str, int]:
        conn = self._reader()
        return {
            table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # noqa: S608
            for table in ("documents", "titles", "refs", "links")
        }
