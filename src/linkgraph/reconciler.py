"""Bring the store in line with the corpus on disk.

Entry points:
    full_sync(cancel=None)     # whole corpus; unchanged documents cost one read + hash
    sync_one(identity)         # one document, e.g. after a save
    rebuild()                  # drop every row, then full_sync

Reading and hashing happen outside any transaction; each changed document
is then written in its own transaction, so a failure (or a crash) loses
at most the document being written and never leaves it half-replaced.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from linkgraph.errors import DocumentReadError, FatalStoreError
from linkgraph.extractor import extract
from linkgraph.fingerprint import fingerprint
from linkgraph.models import DocumentError, SyncStats

if TYPE_CHECKING:
    import threading

    from linkgraph.corpus import Corpus
    from linkgraph.extractor import Extractor
    from linkgraph.models import ExtractionResult
    from linkgraph.store import Store

logger = logging.getLogger("linkgraph.reconciler")


class Reconciler:
    def __init__(self, store: Store, corpus: Corpus, extractor: Extractor = extract) -> None:
        self.store = store
        self.corpus = corpus
        self.extractor = extractor

    def write(self, identity: str, digest: str, extraction: ExtractionResult) -> SyncStats:
        """Store an already extracted document in one transaction."""
        self.store.index_document(identity, digest, extraction)
        logger.debug("indexed %s (%d links)", identity, len(extraction.links))
        return SyncStats(
            documents_updated=1,
            links_inserted=len(extraction.links),
            titles_updated=1 if extraction.titles else 0,
            refs_updated=1 if extraction.ref else 0,
        )

    def _index(self, identity: str, data: bytes, digest: str) -> SyncStats:
        return self.write(identity, digest, self.extractor(identity, data))

    def sync_one(self, identity: str, *, force: bool = False) -> SyncStats:
        """Re-extract identity unless its bytes match the stored fingerprint.

        Raises DocumentReadError if the file cannot be read.
        """
        data = self.corpus.read(identity)
        digest = fingerprint(data)
        if not force:
            doc = self.store.get_document(identity)
            if doc is not None and doc.digest == digest:
                return SyncStats(documents_unchanged=1)
        return self._index(identity, data, digest)

    def full_sync(self, cancel: threading.Event | None = None) -> SyncStats:
        """Index changed documents and drop those that disappeared.

        Per-document failures are logged and collected in stats.errors; the
        scan carries on. A fatal store error stops the scan and is reported
        in stats.fatal.
        """
        stats = SyncStats()
        try:
            known = self.store.list_documents()
            for identity in self.corpus.list_documents():
                if cancel is not None and cancel.is_set():
                    stats.cancelled = True
                    logger.info("full sync cancelled")
                    break
                stored_digest = known.pop(identity, None)
                try:
                    data = self.corpus.read(identity)
                except DocumentReadError as exc:
                    logger.warning("skipping unreadable document: %s", exc)
                    stats.errors.append(DocumentError(identity, str(exc)))
                    continue

                digest = fingerprint(data)
                if digest == stored_digest:
                    stats.documents_unchanged += 1
                    continue
                try:
                    stats.merge(self._index(identity, data, digest))
                except FatalStoreError:
                    raise
                except Exception as exc:
                    logger.exception("failed to index %s", identity)
                    stats.errors.append(DocumentError(identity, str(exc)))

            if not stats.cancelled:
                # Whatever is left was indexed before but is gone from the corpus.
                for identity in sorted(known):
                    if self.store.clear_document(identity):
                        stats.documents_removed += 1
                        logger.debug("removed %s", identity)
        except FatalStoreError as exc:
            logger.error("full sync aborted: %s", exc)
            stats.fatal = str(exc)

        logger.info("full sync: %s", stats.summary())
        return stats

    def rebuild(self, cancel: threading.Event | None = None) -> SyncStats:
        self.store.reset()
        return self.full_sync(cancel)
