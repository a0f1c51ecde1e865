"""Persistent backlink index over a corpus of linked text documents.

The files on disk are the source of truth; the SQLite store is a derived
index that can be deleted and rebuilt at any time.

Layout:
    <corpus>/
        linkgraph.toml
        notes/*.org, *.txt    # documents, linked with [[file:...][...]]
        .linkgraph/
            graph.db          # documents, titles, refs, links

Typical use:
    with LinkIndex.open(corpus_root) as idx:
        idx.full_sync()
        idx.query.backlinks(path)
"""

from linkgraph.config import LGConfig, init_config, load_config
from linkgraph.corpus import Corpus, canonicalize
from linkgraph.errors import (
    ConstraintViolationError,
    DocumentReadError,
    FatalStoreError,
    LinkGraphError,
    NotInitializedError,
    SchemaVersionMismatchError,
)
from linkgraph.extractor import extract
from linkgraph.fingerprint import fingerprint
from linkgraph.index import LinkIndex
from linkgraph.models import (
    Backlink,
    Document,
    ExtractedLink,
    ExtractionResult,
    Link,
    LinkProperties,
    SyncOutcome,
    SyncStats,
)
from linkgraph.store import Store

__all__ = [
    "Backlink",
    "ConstraintViolationError",
    "Corpus",
    "Document",
    "DocumentReadError",
    "ExtractedLink",
    "ExtractionResult",
    "FatalStoreError",
    "LGConfig",
    "Link",
    "LinkGraphError",
    "LinkIndex",
    "LinkProperties",
    "NotInitializedError",
    "SchemaVersionMismatchError",
    "Store",
    "SyncOutcome",
    "SyncStats",
    "canonicalize",
    "extract",
    "fingerprint",
    "init_config",
    "load_config",
]
