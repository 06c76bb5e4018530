"""
Mall Core - collection consistency and read reconstruction for the mall storefront.

This package implements the non-trivial core behind the storefront and
back-office:
- Per-user collections (cart, wishlist) with one row per (owner, item)
- Cache invalidation fan-out from every mutation to its derived views
- Reconstruction of nested entities (grouped orders, media, approval counts)

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Caller    │────▶│ Collection  │────▶│  Remote Store   │
    │ (API / UI)  │     │  Mutator    │     │    Gateway      │
    └──────┬──────┘     └──────┬──────┘     └────────▲────────┘
           │                   │ on success          │
           │                   ▼                     │
           │            ┌─────────────┐              │
           │            │    Cache    │              │
           │            │ Coordinator │              │
           │            └──────┬──────┘              │
           │   next access     │ stale               │
           ▼                   ▼                     │
    ┌─────────────────────────────────────┐          │
    │  Read Reconstructor / Aggregator    │──────────┘
    └─────────────────────────────────────┘

Invariants:
    - The remote store is the single source of truth
    - At most one entry per (owner, item) per collection
    - Invalidation runs after every successful mutation and never on failure
    - Owner ids are explicit parameters, never ambient session state

How to change safely:
    - Add a MutationKind and its graph edges together
    - Keep read paths degrading gracefully (empty media, False membership)
    - Never widen a scoped update/delete beyond its owner predicate
"""

from ._version import __version__

__all__ = ["__version__"]
