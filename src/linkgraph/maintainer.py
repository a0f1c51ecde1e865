"""Keep the index consistent when documents are deleted or renamed.

Rename order:
    1. rewrite and re-sync every document that links to the old path
    2. clear the old identity, then index the document under the new one

so a backlink query never sees the old identity as a target once its
document row is gone. Deleting a document leaves links that point at it
in place (dangling) unless pruning is requested.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from linkgraph.errors import FatalStoreError
from linkgraph.fingerprint import fingerprint
from linkgraph.models import DocumentError, SyncStats
from linkgraph.syntax import relocate_relative_links, rewrite_link_targets

if TYPE_CHECKING:
    from collections.abc import Callable

    from linkgraph.corpus import Corpus
    from linkgraph.reconciler import Reconciler
    from linkgraph.store import Store

logger = logging.getLogger("linkgraph.maintainer")


class Rewriter(Protocol):
    def __call__(
        self,
        text: str,
        *,
        source: str,
        old: str,
        new: str,
        old_title: str | None = None,
        new_title: str | None = None,
    ) -> tuple[str, bool]: ...


class Maintainer:
    def __init__(
        self,
        store: Store,
        corpus: Corpus,
        reconciler: Reconciler,
        *,
        rewriter: Rewriter = rewrite_link_targets,
        prune_dangling: bool = False,
    ) -> None:
        self.store = store
        self.corpus = corpus
        self.reconciler = reconciler
        self.rewriter = rewriter
        self.prune_dangling = prune_dangling

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def on_delete(self, identity: str, *, prune: bool | None = None) -> SyncStats:
        stats = SyncStats()
        if not self.corpus.is_member(identity):
            return stats
        if self.store.clear_document(identity):
            stats.documents_removed = 1
            logger.info("deleted %s", identity)
        if self.prune_dangling if prune is None else prune:
            n = self.store.remove_links_to(identity)
            if n:
                logger.info("pruned %d links to %s", n, identity)
        return stats

    # ------------------------------------------------------------------
    # Rename
    # ------------------------------------------------------------------

    def _title(self, identity: str, titles: list[str]) -> str:
        return titles[0] if titles else self.corpus.slug(identity)

    def _rewrite_file(self, identity: str, fix: Callable[[str], tuple[str, bool]]) -> bool:
        """Apply fix(text) -> (text, changed) to a document on disk.

        Bytes that are not valid UTF-8 pass through unchanged.
        """
        text = self.corpus.read(identity).decode("utf-8", errors="surrogateescape")
        new_text, changed = fix(text)
        if changed:
            self.corpus.write(identity, new_text.encode("utf-8", errors="surrogateescape"))
        return changed

    def on_rename(self, old: str, new: str) -> SyncStats:
        """Move old's rows to new and repoint every link that targeted old.

        The file must already be at new. Failures on individual linking
        documents are collected in stats.errors; the rename carries on.
        """
        stats = SyncStats()
        old_member, new_member = self.corpus.is_member(old), self.corpus.is_member(new)
        if not new_member:
            # moved out of the corpus (or to a non-document name)
            return self.on_delete(old) if old_member else stats
        if not old_member or old == new:
            stats.merge(self.reconciler.sync_one(new))
            return stats

        old_title = self._title(old, self.store.titles_for(old))

        # The renamed document itself: relative links and links to itself.
        self._rewrite_file(
            new,
            lambda text: relocate_relative_links(text, old_source=old, new_source=new),
        )
        data = self.corpus.read(new)
        extraction = self.reconciler.extractor(new, data)
        new_title = self._title(new, extraction.titles)

        def fix(text: str, source: str) -> tuple[str, bool]:
            return self.rewriter(text, source=source, old=old, new=new, old_title=old_title, new_title=new_title)

        if self._rewrite_file(new, lambda text: fix(text, new)):
            data = self.corpus.read(new)
            extraction = self.reconciler.extractor(new, data)

        # raw link rows: old may never have been indexed itself
        sources = self.store.link_sources(old)
        for source in sources:
            if source in (old, new):
                continue
            try:
                if self._rewrite_file(source, lambda text, s=source: fix(text, s)):
                    logger.debug("rewrote links in %s", source)
                stats.merge(self.reconciler.sync_one(source))
            except FatalStoreError:
                raise
            except Exception as exc:
                logger.exception("failed to repoint links in %s", source)
                stats.errors.append(DocumentError(source, str(exc)))

        self.store.clear_document(old)
        stats.merge(self.reconciler.write(new, fingerprint(data), extraction))
        logger.info("renamed %s -> %s (%d linking documents)", old, new, len(sources))
        return stats
