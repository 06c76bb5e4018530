"""
Base protocol and query types for the remote store gateway.

This module defines the StoreGateway protocol that every backend must
implement, along with the small query vocabulary the core needs:
- Eq / In predicates (always AND-combined)
- Order and limit
- Embed for nested foreign-key selects

Invariants:
    - Predicates are ANDed; there is no OR
    - update() and delete() return the affected rows so callers can detect
      "nothing matched" without a second round trip
    - Unique and primary key violations surface as Conflict
    - Every other store or transport error surfaces as RemoteFailure

How to change safely:
    - Protocol changes require updating all implementations
    - New predicate kinds must be supported by every backend before use
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    List,
    Optional,
    TYPE_CHECKING,
    Protocol,
    Sequence,
    Tuple,
    Union,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import AppConfig

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@dataclass(frozen=True)
class Eq:
    """Equality predicate.

    A dotted column ("alias.column") filters rows of an embedded resource.
    """
    column: str
    value: Any


@dataclass(frozen=True)
class In:
    """Inclusion predicate: column value must be one of values."""
    column: str
    values: Tuple[Any, ...]

    def __init__(self, column: str, values: Sequence[Any]) -> None:
        object.__setattr__(self, "column", column)
        object.__setattr__(self, "values", tuple(values))


Filter = Union[Eq, In]


@dataclass(frozen=True)
class Order:
    """Ordering clause for select()."""
    column: str
    descending: bool = False


@dataclass(frozen=True)
class Embed:
    """Nested foreign-key select.

    Attributes:
        alias: Key under which the embedded value appears in each row
        table: Embedded table name
        fk_column: For many=False, the foreign key column on the parent row.
            For many=True, the foreign key column on the child rows that
            references the parent's primary key.
        columns: Columns to return from the embedded table
        many: One-to-many (list) instead of many-to-one (single row or None)
        inner: Drop parent rows whose embedded result is empty
        embeds: Nested embeds inside this one

    Example:
        >>> Embed("yvarprod", "yvarprod", "yvarprodidfk",
        ...       embeds=(Embed("yprod", "yprod", "yprodidfk"),))
    """
    alias: str
    table: str
    fk_column: str
    columns: str = "*"
    many: bool = False
    inner: bool = False
    embeds: Tuple["Embed", ...] = ()


@dataclass(frozen=True)
class TableDef:
    """Constraints of a store table, as the in-memory backend enforces them.

    Attributes:
        name: Table name
        primary_key: Primary key column
        unique: (constraint name, columns) pairs
    """
    name: str
    primary_key: str
    unique: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()


def split_filters(filters: Sequence[Filter]) -> Tuple[List[Filter], Dict[str, List[Filter]]]:
    """Split filters into top-level ones and those targeting embeds.

    Args:
        filters: Mixed filters, dotted columns address embedded resources

    Returns:
        Tuple of (top-level filters, {alias: filters with alias stripped})
    """
    top: List[Filter] = []
    nested: Dict[str, List[Filter]] = {}
    for f in filters:
        if "." not in f.column:
            top.append(f)
            continue
        alias, column = f.column.split(".", 1)
        if isinstance(f, Eq):
            nested.setdefault(alias, []).append(Eq(column, f.value))
        else:
            nested.setdefault(alias, []).append(In(column, f.values))
    return top, nested


@runtime_checkable
class StoreGateway(Protocol):
    """Protocol for remote store backends.

    The store is the single source of truth and the only arbiter of
    conflicting writes. Backends must enforce unique constraints
    themselves; the core never locks across calls.

    Example:
        >>> gateway = PostgrestGateway(config)
        >>> rows = await gateway.select("ywishlist", [Eq("yuseridfk", "u1")])
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        embeds: Sequence[Embed] = (),
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Select rows matching all filters.

        Raises:
            RemoteFailure: On transport or store errors
        """
        ...

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """Insert one row and return it as persisted.

        Raises:
            Conflict: If a unique or primary key constraint is violated
            RemoteFailure: On transport or store errors
        """
        ...

    @abstractmethod
    async def update(self, table: str, values: Row, filters: Sequence[Filter]) -> List[Row]:
        """Update all rows matching filters and return them.

        An empty list means no row matched.

        Raises:
            Conflict: If the update violates a unique constraint
            RemoteFailure: On transport or store errors
        """
        ...

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Row]:
        """Delete all rows matching filters and return them.

        Raises:
            RemoteFailure: On transport or store errors
        """
        ...

    @abstractmethod
    async def count(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        embeds: Sequence[Embed] = (),
    ) -> int:
        """Count rows matching filters (inner embeds restrict the count).

        Raises:
            RemoteFailure: On transport or store errors
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release any held connections."""
        ...


def create_gateway(config: "AppConfig") -> StoreGateway:
    """Factory function to create a store gateway from configuration.

    Args:
        config: Application configuration

    Returns:
        Appropriate StoreGateway implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from ..schema.tables import STORE_TABLES
    from .memory import InMemoryGateway
    from .postgrest import PostgrestGateway

    if config.store_backend == StoreBackend.POSTGREST:
        return PostgrestGateway(config.gateway)
    elif config.store_backend == StoreBackend.MEMORY:
        return InMemoryGateway(STORE_TABLES)
    else:
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
