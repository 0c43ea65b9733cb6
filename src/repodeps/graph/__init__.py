"""Graph materialization package."""

from .materializer import (
    DependencyGraph,
    DisplayMode,
    GraphEdge,
    GraphNode,
    group_of,
    labelize,
    materialize,
    summarize,
)
from .phase import GraphPhase

__all__ = [
    "DependencyGraph",
    "DisplayMode",
    "GraphEdge",
    "GraphNode",
    "GraphPhase",
    "group_of",
    "labelize",
    "materialize",
    "summarize",
]
