"""
Remote store gateway for Mall Core.

This module provides a pluggable store interface supporting:
- PostgREST / Supabase over HTTP (production)
- In-memory (for testing and local development)

The store is the single source of truth and the sole arbiter of
conflicting writes; the core holds no authoritative state of its own.

Invariants:
    - Filters are AND-combined equality/inclusion predicates
    - Unique violations surface as Conflict, other failures as RemoteFailure
    - Scoped update/delete return the rows they touched

How to change safely:
    - New backends must implement the StoreGateway protocol
    - Mirror every constraint the production store enforces in the
      in-memory backend, or tests will miss races
"""

from .base import (
    Embed,
    Eq,
    Filter,
    In,
    Order,
    Row,
    StoreGateway,
    TableDef,
    create_gateway,
)
from .memory import InMemoryGateway
from .postgrest import PostgrestGateway

__all__ = [
    # Protocol and types
    "StoreGateway",
    "Row",
    "Eq",
    "In",
    "Filter",
    "Order",
    "Embed",
    "TableDef",
    # Factory
    "create_gateway",
    # Implementations
    "PostgrestGateway",
    "InMemoryGateway",
]
