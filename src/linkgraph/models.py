"""Records stored in and returned by the link index."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Document:
    """One row of the documents table."""

    identity: str
    digest: str
    synced_at: str = ""


@dataclass(frozen=True)
class LinkProperties:
    """Where a link occurs in its source and the text around it."""

    preview: str = ""
    offset: int = 0

    @classmethod
    def from_json(cls, raw: str | None) -> LinkProperties:
        if not raw:
            return cls()
        d: dict[str, Any] = json.loads(raw)
        return cls(preview=d.get("preview", ""), offset=int(d.get("offset", 0)))

    def to_json(self) -> str:
        return json.dumps({"preview": self.preview, "offset": self.offset})


@dataclass(frozen=True)
class Link:
    source: str
    target: str
    properties: LinkProperties = field(default_factory=LinkProperties)


@dataclass
class Title:
    """Titles of a document: first element is the primary title, the rest are aliases."""

    identity: str
    titles: list[str] = field(default_factory=list)

    @property
    def primary(self) -> str | None:
        return self.titles[0] if self.titles else None


@dataclass(frozen=True)
class Ref:
    ref: str
    identity: str


@dataclass(frozen=True)
class Backlink:
    """A link seen from its target: who links here, and from where."""

    source: str
    properties: LinkProperties


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtractedLink:
    target: str
    preview: str = ""
    offset: int = 0

    @property
    def properties(self) -> LinkProperties:
        return LinkProperties(preview=self.preview, offset=self.offset)


@dataclass
class ExtractionResult:
    titles: list[str] = field(default_factory=list)
    ref: str | None = None
    links: list[ExtractedLink] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Sync results
# ---------------------------------------------------------------------------


class SyncOutcome(enum.Enum):
    SYNCED = "synced"
    SYNCED_WITH_ERRORS = "synced with errors"
    FATAL = "fatal"


@dataclass(frozen=True)
class DocumentError:
    identity: str
    message: str


@dataclass
class SyncStats:
    """Aggregate counts for a full_sync run (or a single sync_one)."""

    documents_updated: int = 0
    links_inserted: int = 0
    titles_updated: int = 0
    refs_updated: int = 0
    documents_removed: int = 0
    documents_unchanged: int = 0
    errors: list[DocumentError] = field(default_factory=list)
    fatal: str | None = None
    cancelled: bool = False

    @property
    def outcome(self) -> SyncOutcome:
        if self.fatal is not None:
            return SyncOutcome.FATAL
        if self.errors:
            return SyncOutcome.SYNCED_WITH_ERRORS
        return SyncOutcome.SYNCED

    def merge(self, other: SyncStats) -> None:
        self.documents_updated += other.documents_updated
        self.links_inserted += other.links_inserted
        self.titles_updated += other.titles_updated
        self.refs_updated += other.refs_updated
        self.documents_removed += other.documents_removed
        self.documents_unchanged += other.documents_unchanged
        self.errors.extend(other.errors)

    def summary(self) -> str:
        parts = [
            f"{self.documents_updated} updated",
            f"{self.documents_unchanged} unchanged",
            f"{self.documents_removed} removed",
            f"{self.links_inserted} links",
        ]
        if self.errors:
            parts.append(f"{len(self.errors)} errors")
        if self.cancelled:
            parts.append("cancelled")
        return ", ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "documents_updated": self.documents_updated,
            "documents_unchanged": self.documents_unchanged,
            "documents_removed": self.documents_removed,
            "links_inserted": self.links_inserted,
            "titles_updated": self.titles_updated,
            "refs_updated": self.refs_updated,
            "errors": [{"identity": e.identity, "message": e.message} for e in self.errors],
            "fatal": self.fatal,
            "cancelled": self.cancelled,
        }
