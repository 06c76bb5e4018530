"""
Cache coordination for Mall Core.

This module handles:
- The static invalidation graph (mutation kind -> views)
- The registry of cached views and their staleness

Consistency between a mutation and its dependent views is eventual:
views are marked stale after the write and rebuilt on next access.
"""

from .coordinator import CacheCoordinator, CachedView
from .graph import (
    GraphFrozenError,
    InvalidationGraph,
    MutationKind,
    ViewKey,
    ViewTemplate,
    build_default_graph,
    view_key,
)

__all__ = [
    "CacheCoordinator",
    "CachedView",
    "InvalidationGraph",
    "GraphFrozenError",
    "MutationKind",
    "ViewKey",
    "ViewTemplate",
    "build_default_graph",
    "view_key",
]
