"""Turn a document's bytes into titles, an optional ref, and outbound links.

Any callable matching Extractor can be plugged into the index. The
default understands org-style keywords and file links:

    #+title: Alpha
    #+roam_alias: "Alpha Centauri" AC
    #+roam_key: cite:alpha2020

    See [[file:b.txt][Beta]] for details.
"""

from __future__ import annotations

import re
import shlex
from typing import Protocol

from linkgraph.models import ExtractedLink, ExtractionResult
from linkgraph.syntax import iter_file_links

_KEYWORD_RE = re.compile(r"^[ \t]*#\+(?P<key>[A-Za-z_]+):[ \t]*(?P<value>.*?)[ \t]*$", re.MULTILINE)
_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n")
_WS_RE = re.compile(r"\s+")

PREVIEW_MAX_CHARS = 300


class Extractor(Protocol):
    def __call__(self, identity: str, data: bytes) -> ExtractionResult: ...


def _keywords(text: str) -> dict[str, list[str]]:
    found: dict[str, list[str]] = {}
    for m in _KEYWORD_RE.finditer(text):
        found.setdefault(m.group("key").lower(), []).append(m.group("value"))
    return found


def _aliases(values: list[str]) -> list[str]:
    aliases: list[str] = []
    for value in values:
        try:
            aliases.extend(shlex.split(value))
        except ValueError:
            # unbalanced quote: fall back to plain whitespace split
            aliases.extend(value.split())
    return [a for a in aliases if a]


def _preview(text: str, offset: int) -> str:
    """The paragraph around offset, whitespace collapsed."""
    start = 0
    for m in _PARAGRAPH_BREAK_RE.finditer(text, 0, offset):
        start = m.end()
    m = _PARAGRAPH_BREAK_RE.search(text, offset)
    end = m.start() if m else len(text)
    para = _WS_RE.sub(" ", text[start:end]).strip()
    if len(para) > PREVIEW_MAX_CHARS:
        para = para[: PREVIEW_MAX_CHARS - 1].rstrip() + "…"
    return para


def extract(identity: str, data: bytes) -> ExtractionResult:
    text = data.decode("utf-8", errors="replace")
    keywords = _keywords(text)

    titles: list[str] = []
    declared = [t for t in keywords.get("title", []) if t]
    if declared:
        titles.append(declared[0])
    for alias in _aliases(keywords.get("roam_alias", [])):
        if alias not in titles:
            titles.append(alias)

    refs = [r for r in keywords.get("roam_key", []) if r]

    links = [
        ExtractedLink(target=link.target, preview=_preview(text, link.start), offset=link.start)
        for link in iter_file_links(text, identity)
    ]
    return ExtractionResult(titles=titles, ref=refs[0] if refs else None, links=links)
