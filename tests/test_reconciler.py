"""full_sync / sync_one against a real corpus directory."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from linkgraph.errors import DocumentReadError
from linkgraph.models import Backlink, SyncOutcome


def test_full_sync_scenario(index, alpha_beta):
    a, b = alpha_beta
    stats = index.full_sync()

    assert stats.outcome is SyncOutcome.SYNCED
    assert stats.documents_updated == 2
    assert stats.links_inserted == 1
    assert stats.titles_updated == 2
    assert stats.refs_updated == 1
    assert stats.documents_removed == 0

    store = index.store
    assert store.titles_for(a) == ["Alpha"]
    backlinks = store.backlinks_to(b)
    assert len(backlinks) == 1
    assert isinstance(backlinks[0], Backlink)
    assert backlinks[0].source == a
    text = Path(a).read_text()
    assert backlinks[0].properties.offset == text.index("[[file:b.txt")
    assert "Alpha links to" in backlinks[0].properties.preview
    assert store.find_ref("beta-key") == b


def test_second_full_sync_is_a_noop(index, alpha_beta, extractor):
    index.full_sync()
    calls = extractor.total

    stats = index.full_sync()
    assert stats.documents_updated == 0
    assert stats.documents_removed == 0
    assert stats.links_inserted == 0
    assert stats.documents_unchanged == 2
    assert extractor.total == calls


def test_sync_one_skips_extractor_for_unchanged_bytes(index, alpha_beta, extractor):
    a, _ = alpha_beta
    index.full_sync()
    assert extractor.calls[a] == 1

    stats = index.sync_one(a)
    assert stats.documents_unchanged == 1
    assert extractor.calls[a] == 1

    # touching the file without changing bytes is still unchanged
    os.utime(a)
    index.full_sync()
    assert extractor.calls[a] == 1


def test_changed_title_replaces_not_merges(index, write_doc):
    a = write_doc("a.txt", "#+title: A\n#+roam_alias: Old\n")
    index.full_sync()
    write_doc("a.txt", "#+title: B\n")

    stats = index.sync_one(a)
    assert stats.documents_updated == 1
    assert index.store.titles_for(a) == ["B"]


def test_deleted_document_removed_and_link_left_dangling(index, alpha_beta):
    a, b = alpha_beta
    index.full_sync()
    Path(b).unlink()

    stats = index.full_sync()
    assert stats.documents_removed == 1
    assert index.store.get_document(b) is None
    assert index.store.backlinks_to(b) == []
    assert (a, b) in index.store.all_links()
    assert [link.target for link in index.query.dangling_links()] == [b]


def test_recreated_target_resolves_existing_links(index, alpha_beta, write_doc):
    a, b = alpha_beta
    index.full_sync()
    Path(b).unlink()
    index.full_sync()

    write_doc("b.txt", "#+title: Beta again\n")
    index.full_sync()
    assert [bl.source for bl in index.store.backlinks_to(b)] == [a]


def test_new_documents_in_subdirectories_are_found_hidden_ones_are_not(index, write_doc):
    nested = write_doc("deep/er/n.org", "#+title: Nested\n")
    write_doc(".hidden/h.org", "#+title: Hidden\n")
    write_doc(".dot.txt", "#+title: Dot\n")
    write_doc("image.png", "not a document")
    index.full_sync()
    assert list(index.store.list_documents()) == [nested]


def test_unreadable_document_is_reported_and_scan_continues(index, alpha_beta, monkeypatch: pytest.MonkeyPatch):
    a, b = alpha_beta
    real_read = index.corpus.read

    def flaky_read(identity: str) -> bytes:
        if identity == a:
            raise DocumentReadError(identity, "Permission denied")
        return real_read(identity)

    monkeypatch.setattr(index.corpus, "read", flaky_read)
    stats = index.full_sync()

    assert stats.outcome is SyncOutcome.SYNCED_WITH_ERRORS
    assert [e.identity for e in stats.errors] == [a]
    assert "Permission denied" in stats.errors[0].message
    assert list(index.store.list_documents()) == [b]


def test_unreadable_document_keeps_its_previous_rows(index, alpha_beta, monkeypatch: pytest.MonkeyPatch):
    a, _ = alpha_beta
    index.full_sync()

    def broken_read(identity: str) -> bytes:
        raise DocumentReadError(identity, "I/O error")

    monkeypatch.setattr(index.corpus, "read", broken_read)
    stats = index.full_sync()
    assert stats.documents_removed == 0
    assert index.store.titles_for(a) == ["Alpha"]


def test_extractor_failure_isolated_to_one_document(cfg, alpha_beta):
    from linkgraph.extractor import extract
    from linkgraph.index import LinkIndex

    a, b = alpha_beta

    def picky(identity: str, data: bytes):
        if identity == b:
            raise ValueError("cannot parse")
        return extract(identity, data)

    with LinkIndex(cfg, extractor=picky) as idx:
        stats = idx.full_sync()
        assert stats.outcome is SyncOutcome.SYNCED_WITH_ERRORS
        assert stats.errors[0].identity == b
        assert list(idx.store.list_documents()) == [a]


def test_closed_store_reports_fatal(index, alpha_beta):
    index.full_sync()
    index.store.close()
    stats = index.full_sync()
    assert stats.outcome is SyncOutcome.FATAL
    assert "not open" in stats.fatal


def test_cancelled_sync_keeps_committed_state(index, alpha_beta):
    a, b = alpha_beta
    index.full_sync()
    Path(b).unlink()

    cancel = threading.Event()
    cancel.set()
    stats = index.full_sync(cancel)
    assert stats.cancelled
    assert stats.documents_removed == 0
    assert set(index.store.list_documents()) == {a, b}


def test_rebuild_reextracts_everything(index, alpha_beta, extractor):
    index.full_sync()
    stats = index.rebuild()
    assert stats.documents_updated == 2
    assert extractor.total == 4


def test_no_orphan_links_after_mixed_operations(index, alpha_beta, write_doc, orphan_link_count):
    a, b = alpha_beta
    c = write_doc("c.txt", "[[file:a.txt]] [[file:b.txt]]\n")
    index.full_sync()
    Path(a).unlink()
    index.full_sync()
    index.on_delete(c)
    write_doc("a.txt", "[[file:c.txt]]\n")
    index.on_save(a)
    assert orphan_link_count() == 0
