"""File-link syntax shared by the extractor and the rename rewriter.

Handles:
    [[file:path]]
    [[file:path][Description]]
    [[file:path::search]]          # search option kept, only the path changes

Relative paths are resolved against the directory of the document that
contains the link.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from linkgraph.corpus import canonicalize

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

FILE_LINK_RE = re.compile(r"\[\[file:(?P<path>[^\]\[]+?)\](?:\[(?P<desc>[^\]]*)\])?\]")


class FileLink(NamedTuple):
    target: str             # canonical identity the link resolves to
    raw_path: str           # path as written, without ::search
    search: str             # "::..." suffix or ""
    description: str | None
    start: int
    end: int


def _split_search(path: str) -> tuple[str, str]:
    if "::" in path:
        base, _, search = path.partition("::")
        return base, "::" + search
    return path, ""


def resolve_link_path(raw_path: str, source: str) -> str:
    """Identity a link written in source resolves to."""
    path = Path(raw_path).expanduser()
    if not path.is_absolute():
        path = Path(source).parent / path
    return canonicalize(path)


def iter_file_links(text: str, source: str) -> Iterator[FileLink]:
    for m in FILE_LINK_RE.finditer(text):
        raw, search = _split_search(m.group("path").strip())
        if not raw:
            continue
        yield FileLink(
            target=resolve_link_path(raw, source),
            raw_path=raw,
            search=search,
            description=m.group("desc"),
            start=m.start(),
            end=m.end(),
        )


def format_link(path: str, description: str | None = None) -> str:
    if description is None:
        return f"[[file:{path}]]"
    return f"[[file:{path}][{description}]]"


def path_in_style(target: str, source: str, like: str) -> str:
    """Spell target the way `like` was spelled: absolute, home-relative or source-relative."""
    if like.startswith("~"):
        home = str(Path.home())
        if target == home or target.startswith(home + os.sep):
            return "~" + target[len(home):]
        return target
    if Path(like).is_absolute():
        return target
    return os.path.relpath(target, start=str(Path(source).parent))


def _rewrite(
    text: str,
    source: str,
    fn: Callable[[FileLink], tuple[str, str | None] | None],
) -> tuple[str, bool]:
    out: list[str] = []
    pos = 0
    changed = False
    for link in iter_file_links(text, source):
        repl = fn(link)
        if repl is None:
            continue
        new_path, new_desc = repl
        new_text = format_link(new_path + link.search, new_desc)
        if new_text != text[link.start:link.end]:
            out.append(text[pos:link.start])
            out.append(new_text)
            pos = link.end
            changed = True
    if not changed:
        return text, False
    out.append(text[pos:])
    return "".join(out), True


def rewrite_link_targets(
    text: str,
    *,
    source: str,
    old: str,
    new: str,
    old_title: str | None = None,
    new_title: str | None = None,
) -> tuple[str, bool]:
    """Point every link in text that resolves to old at new instead.

    A description equal to old_title becomes new_title; any other
    description is kept as written. Returns (text, changed).
    """

    def repl(link: FileLink) -> tuple[str, str | None] | None:
        if link.target != old:
            return None
        desc = link.description
        if desc is not None and old_title is not None and new_title and desc == old_title:
            desc = new_title
        return path_in_style(new, source, link.raw_path), desc

    return _rewrite(text, source, repl)


def relocate_relative_links(text: str, *, old_source: str, new_source: str) -> tuple[str, bool]:
    """Re-spell relative links of a moved document so they keep their targets."""
    if Path(old_source).parent == Path(new_source).parent:
        return text, False

    def repl(link: FileLink) -> tuple[str, str | None] | None:
        if link.raw_path.startswith("~") or Path(link.raw_path).is_absolute():
            return None
        target = resolve_link_path(link.raw_path, old_source)
        return path_in_style(target, new_source, link.raw_path), link.description

    return _rewrite(text, new_source, repl)
