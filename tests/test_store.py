"""Store: schema, versioning, transactional writes and queries."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from linkgraph.errors import ConstraintViolationError, NotInitializedError, SchemaVersionMismatchError
from linkgraph.models import Backlink, ExtractedLink, ExtractionResult, LinkProperties
from linkgraph.store import SCHEMA_VERSION, Store


@pytest.fixture
def store(tmp_path: Path):
    s = Store(tmp_path / "graph.db").open()
    yield s
    s.close()


def _doc(store: Store, identity: str, *, titles=(), ref=None, links=()) -> None:
    store.index_document(identity, f"digest-{identity}", ExtractionResult(titles=list(titles), ref=ref, links=list(links)))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def test_queries_before_open_raise(tmp_path: Path):
    s = Store(tmp_path / "graph.db")
    with pytest.raises(NotInitializedError):
        s.list_documents()
    with pytest.raises(NotInitializedError):
        s.upsert_document("/a", "d")


def test_close_is_idempotent_and_blocks_further_use(tmp_path: Path):
    s = Store(tmp_path / "graph.db").open()
    s.list_documents()
    s.close()
    s.close()
    assert not s.is_open
    with pytest.raises(NotInitializedError):
        s.titles_for("/a")


def test_fresh_store_gets_current_schema_version(store: Store):
    assert store.schema_version() == SCHEMA_VERSION


def test_newer_schema_version_is_refused(tmp_path: Path):
    db = tmp_path / "graph.db"
    conn = sqlite3.connect(db)
    conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
    conn.close()

    s = Store(db)
    with pytest.raises(SchemaVersionMismatchError) as excinfo:
        s.open()
    assert excinfo.value.found == SCHEMA_VERSION + 1
    assert not s.is_open


def test_v1_store_is_migrated(tmp_path: Path):
    db = tmp_path / "graph.db"
    conn = sqlite3.connect(db)
    conn.executescript("""
        CREATE TABLE documents (identity TEXT PRIMARY KEY, digest TEXT NOT NULL);
        INSERT INTO documents VALUES ('/notes/a.txt', 'abc');
        PRAGMA user_version = 1;
    """)
    conn.close()

    with Store(db) as s:
        assert s.schema_version() == SCHEMA_VERSION
        doc = s.get_document("/notes/a.txt")
        assert doc is not None
        assert doc.digest == "abc"
        assert doc.synced_at == ""
        assert s.list_documents() == {"/notes/a.txt": "abc"}


def test_unknown_duplicate_policy_rejected(tmp_path: Path):
    with pytest.raises(ValueError, match="on_duplicate_ref"):
        Store(tmp_path / "graph.db", on_duplicate_ref="merge")


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def test_upsert_keeps_one_row_per_identity(store: Store):
    store.upsert_document("/a", "d1")
    store.upsert_document("/a", "d2")
    assert store.list_documents() == {"/a": "d2"}
    doc = store.get_document("/a")
    assert doc is not None
    assert doc.synced_at


def test_replace_is_not_merge(store: Store):
    _doc(store, "/a", titles=["A", "alias"], ref="k1", links=[ExtractedLink("/b"), ExtractedLink("/c")])
    store.replace_document_data("/a", ["B"], None, [ExtractedLink("/d")])

    assert store.titles_for("/a") == ["B"]
    assert store.find_ref("k1") is None
    assert [link.target for link in store.links_from("/a")] == ["/d"]


def test_replace_without_document_row_is_a_constraint_violation(store: Store):
    with pytest.raises(ConstraintViolationError):
        store.replace_document_data("/ghost", ["T"], None, [ExtractedLink("/b")])
    assert store.all_links() == []
    assert store.titles_for("/ghost") == []


def test_duplicate_ref_overwrites_by_default(store: Store):
    _doc(store, "/a", ref="key")
    _doc(store, "/b", ref="key")
    assert store.find_ref("key") == "/b"
    assert [(r.ref, r.identity) for r in store.all_refs()] == [("key", "/b")]


def test_duplicate_ref_rejected_rolls_back_whole_document(tmp_path: Path):
    with Store(tmp_path / "graph.db", on_duplicate_ref="reject") as s:
        _doc(s, "/a", ref="key")
        with pytest.raises(ConstraintViolationError, match="already bound"):
            _doc(s, "/b", titles=["B"], ref="key", links=[ExtractedLink("/a")])
        assert s.find_ref("key") == "/a"
        assert s.get_document("/b") is None
        assert s.all_links() == []


def test_resyncing_same_ref_on_same_document_is_fine(tmp_path: Path):
    with Store(tmp_path / "graph.db", on_duplicate_ref="reject") as s:
        _doc(s, "/a", ref="key")
        _doc(s, "/a", ref="key")
        assert s.find_ref("key") == "/a"


def test_clear_document_removes_owned_rows_and_is_idempotent(store: Store):
    _doc(store, "/b", titles=["B"])
    _doc(store, "/a", titles=["A"], ref="ka", links=[ExtractedLink("/b")])

    assert store.clear_document("/a") is True
    assert store.clear_document("/a") is False
    assert store.clear_document("/never") is False

    assert store.get_document("/a") is None
    assert store.titles_for("/a") == []
    assert store.find_ref("ka") is None
    assert store.backlinks_to("/b") == []
    assert store.list_documents() == {"/b": "digest-/b"}


def test_clear_target_leaves_dangling_link(store: Store):
    _doc(store, "/b")
    _doc(store, "/a", links=[ExtractedLink("/b", "see b", 3)])
    store.clear_document("/b")

    assert store.backlinks_to("/b") == []
    assert store.all_links() == [("/a", "/b")]
    assert [(link.source, link.target) for link in store.dangling_links()] == [("/a", "/b")]


def test_remove_links_to(store: Store):
    _doc(store, "/a", links=[ExtractedLink("/b"), ExtractedLink("/b"), ExtractedLink("/c")])
    _doc(store, "/x", links=[ExtractedLink("/c")])
    assert store.remove_links_to("/b") == 2
    assert store.all_links() == [("/a", "/c"), ("/x", "/c")]
    # /a lost rows its file still has, so its digest no longer matches
    assert store.list_documents() == {"/a": "", "/x": "digest-/x"}


def test_link_sources_ignore_whether_target_is_indexed(store: Store):
    _doc(store, "/z", links=[ExtractedLink("/t"), ExtractedLink("/t")])
    _doc(store, "/a", links=[ExtractedLink("/t")])
    assert store.backlinks_to("/t") == []
    assert store.link_sources("/t") == ["/a", "/z"]


def test_reset_drops_all_rows(store: Store):
    _doc(store, "/a", titles=["A"], ref="k", links=[ExtractedLink("/b")])
    store.reset()
    assert store.counts() == {"documents": 0, "titles": 0, "refs": 0, "links": 0}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def test_backlinks_ordered_by_source_then_insertion(store: Store):
    _doc(store, "/t")
    _doc(store, "/z", links=[ExtractedLink("/t", "z first", 1), ExtractedLink("/t", "z second", 9)])
    _doc(store, "/a", links=[ExtractedLink("/t", "a only", 5)])

    assert store.backlinks_to("/t") == [
        Backlink("/a", LinkProperties("a only", 5)),
        Backlink("/z", LinkProperties("z first", 1)),
        Backlink("/z", LinkProperties("z second", 9)),
    ]


def test_forward_reference_resolves_once_target_is_indexed(store: Store):
    _doc(store, "/a", links=[ExtractedLink("/later")])
    assert store.backlinks_to("/later") == []
    _doc(store, "/later")
    assert [b.source for b in store.backlinks_to("/later")] == ["/a"]


def test_all_titles_includes_documents_without_titles(store: Store):
    _doc(store, "/a", titles=["Alpha", "A"])
    _doc(store, "/b")
    assert [(t.identity, t.titles) for t in store.all_titles()] == [("/a", ["Alpha", "A"]), ("/b", [])]


def test_all_links_is_distinct(store: Store):
    _doc(store, "/a", links=[ExtractedLink("/b", "x", 1), ExtractedLink("/b", "y", 2), ExtractedLink("/c")])
    assert store.all_links() == [("/a", "/b"), ("/a", "/c")]


def test_titles_for_unknown_identity_is_empty(store: Store):
    assert store.titles_for("/nope") == []
