"""Content fingerprints used to decide whether a document needs re-extraction."""

from __future__ import annotations

import hashlib


def fingerprint(data: bytes) -> str:
    """Return the SHA-1 hex digest of a document's bytes."""
    return hashlib.sha1(data, usedforsecurity=False).hexdigest()
