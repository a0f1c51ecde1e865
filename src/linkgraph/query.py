"""Read-only views over the store: completions, backlinks, graph export."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from linkgraph.corpus import Corpus
    from linkgraph.models import Link, LinkProperties
    from linkgraph.store import Store


@dataclass(frozen=True)
class Completion:
    display: str
    identity: str


@dataclass
class BacklinkGroup:
    """All links from one source to the queried document, in source order."""

    source: str
    title: str
    occurrences: list[LinkProperties] = field(default_factory=list)


@dataclass(frozen=True)
class GraphNode:
    identity: str
    title: str


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str


def _dot_quote(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


@dataclass
class Graph:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [{"id": n.identity, "title": n.title} for n in self.nodes],
            "edges": [{"source": e.source, "target": e.target} for e in self.edges],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def to_dot(self, name: str = "linkgraph") -> str:
        lines = [f"digraph {_dot_quote(name)} {{"]
        for n in self.nodes:
            lines.append(f"  {_dot_quote(n.identity)} [label={_dot_quote(n.title)}];")
        for e in self.edges:
            lines.append(f"  {_dot_quote(e.source)} -> {_dot_quote(e.target)};")
        lines.append("}")
        return "\n".join(lines) + "\n"


class Query:
    def __init__(self, store: Store, corpus: Corpus) -> None:
        self.store = store
        self.corpus = corpus

    def title_of(self, identity: str) -> str:
        """Primary title, or the slug when the document declares none."""
        titles = self.store.titles_for(identity)
        return titles[0] if titles else self.corpus.slug(identity)

    def title_completions(self) -> list[Completion]:
        """One entry per title and alias of every document."""
        out: list[Completion] = []
        for t in self.store.all_titles():
            for display in t.titles or [self.corpus.slug(t.identity)]:
                out.append(Completion(display=display, identity=t.identity))
        return out

    def ref_completions(self) -> list[Completion]:
        return [Completion(display=r.ref, identity=r.identity) for r in self.store.all_refs()]

    def find_ref(self, ref: str) -> str | None:
        return self.store.find_ref(ref)

    def backlinks(self, identity: str) -> list[BacklinkGroup]:
        groups: dict[str, BacklinkGroup] = {}
        for b in self.store.backlinks_to(identity):
            group = groups.get(b.source)
            if group is None:
                group = groups[b.source] = BacklinkGroup(source=b.source, title=self.title_of(b.source))
            group.occurrences.append(b.properties)
        return list(groups.values())

    def graph(self) -> Graph:
        """Every document as a node; parallel links collapse into one edge."""
        nodes = [
            GraphNode(identity=t.identity, title=t.primary or self.corpus.slug(t.identity))
            for t in self.store.all_titles()
        ]
        seen: set[tuple[str, str]] = set()
        edges: list[GraphEdge] = []
        for source, target in self.store.all_links():
            if (source, target) in seen:
                continue
            seen.add((source, target))
            edges.append(GraphEdge(source=source, target=target))
        return Graph(nodes=nodes, edges=edges)

    def dangling_links(self) -> list[Link]:
        return self.store.dangling_links()

    def stats(self) -> dict[str, int]:
        return self.store.counts()
