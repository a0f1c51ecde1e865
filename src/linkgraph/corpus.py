"""The corpus: which files under a root are documents, and how to read them.

Identities are canonical absolute paths (symlinks and relative segments
resolved), so two spellings of the same file always compare equal.
"""

from __future__ import annotations

import contextlib
import os
import uuid
from fnmatch import fnmatch
from pathlib import Path
from typing import TYPE_CHECKING

from linkgraph.errors import DocumentReadError

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_EXTENSIONS = (".org", ".txt")


def canonicalize(path: Path | str) -> str:
    """Canonical identity for path; the file does not have to exist."""
    return str(Path(path).expanduser().resolve())


class Corpus:
    """Documents under root with one of the given extensions, hidden entries excluded."""

    def __init__(
        self,
        root: Path | str,
        *,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        exclude: Iterable[str] = (),
    ) -> None:
        self.root = Path(canonicalize(root))
        self.extensions = tuple(e if e.startswith(".") else f".{e}" for e in extensions)
        self.exclude = tuple(exclude)

    def _rel(self, identity: str) -> str | None:
        try:
            return Path(identity).relative_to(self.root).as_posix()
        except ValueError:
            return None

    def is_member(self, identity: str) -> bool:
        """True if identity names a document of this corpus (existing or not)."""
        rel = self._rel(identity)
        if rel is None or rel == ".":
            return False
        if any(part.startswith(".") for part in rel.split("/")):
            return False
        if not rel.endswith(self.extensions):
            return False
        return not any(fnmatch(rel, pat.lstrip("/")) for pat in self.exclude)

    def list_documents(self) -> list[str]:
        """Every document identity currently reachable under root, sorted."""
        if not self.root.is_dir():
            return []
        found: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            # prune hidden directories in place so os.walk skips them
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for name in filenames:
                identity = canonicalize(Path(dirpath) / name)
                if self.is_member(identity) and Path(identity).is_file():
                    found.append(identity)
        return sorted(dict.fromkeys(found))

    def read(self, identity: str) -> bytes:
        try:
            return Path(identity).read_bytes()
        except OSError as exc:
            raise DocumentReadError(identity, exc.strerror or str(exc)) from exc

    def write(self, identity: str, data: bytes) -> None:
        """Replace the file atomically: temp file in the same directory, fsync, rename."""
        path = Path(identity)
        tmp_path = path.parent / f".{path.name}.tmp-{uuid.uuid4().hex}"
        try:
            with tmp_path.open("wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_path.unlink()

    def exists(self, identity: str) -> bool:
        return Path(identity).is_file()

    def slug(self, identity: str) -> str:
        """Title fallback: path relative to root without its extension."""
        rel = self._rel(identity)
        path = Path(rel) if rel is not None else Path(identity)
        return path.with_suffix("").as_posix()
