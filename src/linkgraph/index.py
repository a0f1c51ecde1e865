"""LinkIndex: the caller-owned handle on one corpus and its store.

    with LinkIndex.open("/path/to/notes") as idx:
        idx.full_sync()
        idx.on_save(path)
        idx.on_rename(old, new)
        idx.query.backlinks(path)

The store connection is opened lazily on first use and released exactly
once by close(), including when opening it failed half-way.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from linkgraph.config import LGConfig, load_config
from linkgraph.corpus import Corpus, canonicalize
from linkgraph.errors import NotInitializedError
from linkgraph.extractor import extract
from linkgraph.maintainer import Maintainer, Rewriter
from linkgraph.query import Query
from linkgraph.reconciler import Reconciler
from linkgraph.store import Store
from linkgraph.syntax import rewrite_link_targets

if TYPE_CHECKING:
    from pathlib import Path

    from linkgraph.extractor import Extractor
    from linkgraph.models import SyncStats

logger = logging.getLogger("linkgraph.index")


class LinkIndex:
    def __init__(
        self,
        cfg: LGConfig,
        *,
        extractor: Extractor = extract,
        rewriter: Rewriter = rewrite_link_targets,
    ) -> None:
        self.cfg = cfg
        self.corpus = Corpus(cfg.corpus_dir, extensions=cfg.extensions, exclude=cfg.exclude)
        self.extractor = extractor
        self.rewriter = rewriter
        self._store: Store | None = None
        self._reconciler: Reconciler | None = None
        self._maintainer: Maintainer | None = None
        self._query: Query | None = None
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(
        cls,
        root: LGConfig | Path | str | None = None,
        *,
        extractor: Extractor = extract,
        rewriter: Rewriter = rewrite_link_targets,
    ) -> LinkIndex:
        """Handle for the corpus at root (a config, or a directory to load linkgraph.toml from)."""
        cfg = root if isinstance(root, LGConfig) else load_config(root)
        return cls(cfg, extractor=extractor, rewriter=rewriter)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _open(self) -> Store:
        with self._lock:
            if self._closed:
                msg = f"index for {self.cfg.corpus_dir} is closed"
                raise NotInitializedError(msg)
            if self._store is None:
                self.cfg.ensure_dirs()
                store = Store(self.cfg.db_path, on_duplicate_ref=self.cfg.refs.on_duplicate)
                store.open()
                self._store = store
                self._reconciler = Reconciler(store, self.corpus, self.extractor)
                self._maintainer = Maintainer(
                    store,
                    self.corpus,
                    self._reconciler,
                    rewriter=self.rewriter,
                    prune_dangling=self.cfg.links.prune_dangling,
                )
                self._query = Query(store, self.corpus)
                logger.info("opened index %s for %s", self.cfg.db_path, self.cfg.corpus_dir)
            return self._store

    @property
    def store(self) -> Store:
        return self._open()

    @property
    def reconciler(self) -> Reconciler:
        self._open()
        return self._reconciler  # type: ignore[return-value]

    @property
    def maintainer(self) -> Maintainer:
        self._open()
        return self._maintainer  # type: ignore[return-value]

    @property
    def query(self) -> Query:
        self._open()
        return self._query  # type: ignore[return-value]

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            store, self._store = self._store, None
        if store is not None:
            store.close()

    def __enter__(self) -> LinkIndex:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def full_sync(self, cancel: threading.Event | None = None) -> SyncStats:
        return self.reconciler.full_sync(cancel)

    def rebuild(self, cancel: threading.Event | None = None) -> SyncStats:
        return self.reconciler.rebuild(cancel)

    def sync_one(self, path: Path | str) -> SyncStats:
        return self.reconciler.sync_one(canonicalize(path))

    # ------------------------------------------------------------------
    # Events from the host
    # ------------------------------------------------------------------

    def on_save(self, path: Path | str) -> SyncStats | None:
        """A file was written. Returns None when it is not a corpus document."""
        identity = canonicalize(path)
        if not self.corpus.is_member(identity):
            logger.debug("ignoring save of non-document %s", identity)
            return None
        if not self.corpus.exists(identity):
            return self.maintainer.on_delete(identity)
        return self.reconciler.sync_one(identity)

    def on_delete(self, path: Path | str, *, prune: bool | None = None) -> SyncStats:
        return self.maintainer.on_delete(canonicalize(path), prune=prune)

    def on_rename(self, old: Path | str, new: Path | str) -> SyncStats:
        return self.maintainer.on_rename(canonicalize(old), canonicalize(new))
