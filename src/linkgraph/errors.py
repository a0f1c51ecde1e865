"""Exception taxonomy for the link index."""

from __future__ import annotations


class LinkGraphError(Exception):
    """Base class for all linkgraph errors."""


class FatalStoreError(LinkGraphError):
    """The store is unusable; nothing further can be read or written."""


class NotInitializedError(FatalStoreError):
    """Store used before open() or after close()."""


class SchemaVersionMismatchError(FatalStoreError):
    def __init__(self, found: int, supported: int) -> None:
        self.found = found
        self.supported = supported
        if found > supported:
            msg = (
                f"store schema version {found} is newer than supported version {supported}; "
                "upgrade linkgraph or rebuild the index"
            )
        else:
            msg = f"no migration path from store schema version {found} to {supported}"
        super().__init__(msg)


class ConstraintViolationError(LinkGraphError):
    """A write would break a store invariant (duplicate ref, orphaned rows)."""


class DocumentReadError(LinkGraphError, OSError):
    """A corpus document could not be read."""

    def __init__(self, identity: str, reason: str) -> None:
        self.identity = identity
        super().__init__(f"cannot read {identity}: {reason}")
