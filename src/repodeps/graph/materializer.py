"""Flatten a dependency cache into the node and edge lists a renderer consumes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

import networkx as nx

_SHA_SUFFIX = re.compile(r"@([a-f0-9]{40})")
_SHORT_SHA_LENGTH = 6


class DisplayMode(str, Enum):
    INTERNAL = "internal"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class GraphNode:
    id: str
    label: str
    group: str


@dataclass(frozen=True, slots=True)
class GraphEdge:
    source: str
    target: str


@dataclass(slots=True)
class DependencyGraph:
    """Nodes and edges of a materialized dependency cache."""

    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def as_dict(self) -> Dict[str, List[Dict[str, str]]]:
        return {
            "nodes": [{"id": node.id, "label": node.label, "group": node.group} for node in self.nodes],
            "edges": [{"from": edge.source, "to": edge.target} for edge in self.edges],
        }

    def to_networkx(self) -> nx.DiGraph:
        graph = nx.DiGraph()
        for node in self.nodes:
            graph.add_node(node.id, label=node.label, group=node.group)
        graph.add_edges_from((edge.source, edge.target) for edge in self.edges)
        return graph


def labelize(key: str) -> str:
    """Shorten a trailing 40-hex commit to its first six characters."""

    match = _SHA_SUFFIX.search(key)
    if not match:
        return key
    return f"{key[: match.start()]}@{match.group(1)[:_SHORT_SHA_LENGTH]}"


def group_of(key: str) -> str:
    return _SHA_SUFFIX.sub("", key)


def _unique_keys(entries: Mapping[str, Sequence[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for key, dependencies in entries.items():
        for dependency in dependencies:
            seen.setdefault(dependency, None)
        seen.setdefault(key, None)
    return list(seen)


def _edges(entries: Mapping[str, Sequence[str]]) -> Iterable[Tuple[str, str]]:
    for key, dependencies in entries.items():
        for dependency in dependencies:
            yield key, dependency


def materialize(
    entries: Mapping[str, Sequence[str]],
    organization: str,
    mode: DisplayMode | str = DisplayMode.ALL,
) -> DependencyGraph:
    """Build the graph for ``entries``.

    Every cache key and every dependency key becomes a node, so external and
    unexpanded leaves are included. ``DisplayMode.INTERNAL`` keeps nodes whose
    key contains the organization name and the edges between them.
    """

    mode = DisplayMode(mode)
    nodes = [GraphNode(id=key, label=labelize(key), group=group_of(key)) for key in _unique_keys(entries)]
    edges = [GraphEdge(source=source, target=target) for source, target in _edges(entries)]
    if mode is DisplayMode.INTERNAL:
        if not organization:
            raise ValueError("organization is required to select internal nodes")
        nodes = [node for node in nodes if organization in node.id]
        kept = {node.id for node in nodes}
        edges = [edge for edge in edges if edge.source in kept and edge.target in kept]
    return DependencyGraph(nodes=nodes, edges=edges)


def summarize(graph: DependencyGraph) -> Dict[str, Any]:
    """Return node/edge counts and the number of dependency cycles."""

    digraph = graph.to_networkx()
    cycles = [component for component in nx.strongly_connected_components(digraph) if len(component) > 1]
    return {
        "nodes": digraph.number_of_nodes(),
        "edges": digraph.number_of_edges(),
        "groups": len({node.group for node in graph.nodes}),
        "cycles": len(cycles),
    }


__all__ = [
    "DependencyGraph",
    "DisplayMode",
    "GraphEdge",
    "GraphNode",
    "group_of",
    "labelize",
    "materialize",
    "summarize",
]
