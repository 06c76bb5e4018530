"""
Collection mutation for Mall Core.

The mutator is the only writer of per-owner collections. It keeps one
entry per (owner, item), scopes every write by owner, and tells the
cache coordinator which views went stale.
"""

from .mutator import CollectionMutator, random_timestamp_id

__all__ = [
    "CollectionMutator",
    "random_timestamp_id",
]
