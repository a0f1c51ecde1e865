"""Shared fixtures: a corpus directory, a counting extractor, an open index."""

from __future__ import annotations

import sqlite3
from collections import Counter
from pathlib import Path

import pytest

from linkgraph.config import LGConfig
from linkgraph.extractor import extract
from linkgraph.index import LinkIndex
from linkgraph.models import ExtractionResult


class CountingExtractor:
    """Wraps the default extractor and records how often each document was parsed."""

    def __init__(self) -> None:
        self.calls: Counter[str] = Counter()

    def __call__(self, identity: str, data: bytes) -> ExtractionResult:
        self.calls[identity] += 1
        return extract(identity, data)

    @property
    def total(self) -> int:
        return sum(self.calls.values())


@pytest.fixture
def orphan_link_count(cfg: LGConfig):
    """Links whose source has no document row (must always be zero)."""

    def _count() -> int:
        conn = sqlite3.connect(str(cfg.db_path))
        try:
            return conn.execute(
                "SELECT COUNT(*) FROM links l LEFT JOIN documents d ON d.identity = l.source "
                "WHERE d.identity IS NULL"
            ).fetchone()[0]
        finally:
            conn.close()

    return _count


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LINKGRAPH_CORPUS_DIR", raising=False)
    monkeypatch.delenv("LINKGRAPH_DB_PATH", raising=False)


@pytest.fixture
def corpus_dir(tmp_path: Path) -> Path:
    d = (tmp_path / "notes").resolve()
    d.mkdir()
    return d


@pytest.fixture
def write_doc(corpus_dir: Path):
    """write_doc("a.txt", text) -> identity of the written file."""

    def _write(rel: str, text: str) -> str:
        path = corpus_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def cfg(tmp_path: Path, corpus_dir: Path) -> LGConfig:
    return LGConfig(root=tmp_path, name="test", corpus_dir=corpus_dir, index_dir=tmp_path / ".linkgraph")


@pytest.fixture
def extractor() -> CountingExtractor:
    return CountingExtractor()


@pytest.fixture
def index(cfg: LGConfig, extractor: CountingExtractor):
    idx = LinkIndex(cfg, extractor=extractor)
    yield idx
    idx.close()


@pytest.fixture
def alpha_beta(write_doc) -> tuple[str, str]:
    """a.txt (Alpha) links to b.txt (Beta, ref beta-key)."""
    a = write_doc("a.txt", "#+title: Alpha\n\nAlpha links to [[file:b.txt][Beta]] here.\n")
    b = write_doc("b.txt", "#+title: Beta\n#+roam_key: beta-key\n\nBeta body.\n")
    return a, b
