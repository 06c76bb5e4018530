"""
Schema definitions for the storefront's remote store.

Names of tables, columns and embeds live here so that the mutator,
reconstructor and aggregator never hardcode them.
"""

from .tables import (
    CART,
    COLLECTIONS,
    STORE_TABLES,
    WISHLIST,
    CollectionDef,
    CollectionType,
    ReviewStatus,
    get_collection,
)

__all__ = [
    "CollectionType",
    "CollectionDef",
    "CART",
    "WISHLIST",
    "COLLECTIONS",
    "STORE_TABLES",
    "ReviewStatus",
    "get_collection",
]
