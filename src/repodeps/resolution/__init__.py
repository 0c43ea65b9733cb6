"""Dependency resolution package."""

from .cache import CacheConflictError, DependencyCache, InFlightTable
from .manifest import ManifestError, parse_manifest
from .models import (
    DEAD_BRANCH_PREFIX,
    EMPTY_REPOSITORY_MARKER,
    DependencyDeclaration,
    GitReference,
    ResolvedNode,
    node_key,
)
from .resolver import DependencyResolver, ResolutionStats, gather_or_cancel

__all__ = [
    "CacheConflictError",
    "DEAD_BRANCH_PREFIX",
    "DependencyCache",
    "DependencyDeclaration",
    "DependencyResolver",
    "EMPTY_REPOSITORY_MARKER",
    "GitReference",
    "InFlightTable",
    "ManifestError",
    "ResolutionStats",
    "ResolvedNode",
    "gather_or_cancel",
    "node_key",
    "parse_manifest",
]
