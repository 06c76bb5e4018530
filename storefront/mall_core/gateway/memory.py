"""
In-memory store gateway for testing.

This module provides an in-memory StoreGateway for:
- Unit tests
- Integration tests
- Local development without a running store

Invariants:
    - All data is lost on process exit
    - Primary key and unique constraints are enforced like the real store
    - Each operation is atomic with respect to other operations

How to change safely:
    - This is test-oriented code, changes don't affect production
    - Keep behaviour compatible with PostgrestGateway (same errors, same shapes)
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from ..errors import Conflict
from .base import (
    Embed,
    Eq,
    Filter,
    In,
    Order,
    Row,
    TableDef,
    split_filters,
)

logger = logging.getLogger(__name__)


def _matches(row: Row, filters: Sequence[Filter]) -> bool:
    for f in filters:
        if isinstance(f, Eq):
            if row.get(f.column) != f.value:
                return False
        elif isinstance(f, In):
            if row.get(f.column) not in f.values:
                return False
    return True


def _project(row: Row, columns: str) -> Row:
    if columns.strip() == "*":
        return dict(row)
    names = [c.strip() for c in columns.split(",") if c.strip()]
    return {name: row.get(name) for name in names}


class InMemoryGateway:
    """In-memory implementation of StoreGateway for testing.

    Tables declared through TableDef get their primary key and unique
    constraints enforced. Undeclared tables are created on first use and
    use the storefront naming convention "<table>id" as primary key.

    Attributes:
        latency: Seconds each operation sleeps before running. Even 0 yields
            to the event loop, which lets concurrent callers interleave.
        calls: (operation, table) log of every call, for assertions

    Example:
        >>> store = InMemoryGateway([TableDef("ywishlist", "ywishlistid")])
        >>> await store.insert("ywishlist", {"ywishlistid": 1, "yuseridfk": "u1"})
        >>> await store.select("ywishlist", [Eq("yuseridfk", "u1")])
    """

    def __init__(self, tables: Iterable[TableDef] = (), latency: float = 0.0) -> None:
        self.latency = latency
        self.calls: List[Tuple[str, str]] = []
        self._defs: Dict[str, TableDef] = {t.name: t for t in tables}
        self._tables: Dict[str, List[Row]] = defaultdict(list)
        self._sequences: Dict[str, Any] = defaultdict(lambda: itertools.count(1))
        self._lock = asyncio.Lock()
        self._pending_failure: Optional[Exception] = None

    def _primary_key(self, table: str) -> str:
        table_def = self._defs.get(table)
        return table_def.primary_key if table_def else f"{table}id"

    async def _begin(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        await asyncio.sleep(self.latency)
        if self._pending_failure is not None:
            exc, self._pending_failure = self._pending_failure, None
            raise exc

    def _materialize(
        self,
        table: str,
        row: Row,
        columns: str,
        embeds: Sequence[Embed],
        nested_filters: Dict[str, List[Filter]],
    ) -> Optional[Row]:
        """Project a row and resolve its embeds; None drops the row."""
        out = _project(row, columns)
        for embed in embeds:
            top, deeper = split_filters(nested_filters.get(embed.alias, []))
            if embed.many:
                parent_key = row.get(self._primary_key(table))
                children = [
                    child
                    for child in self._tables[embed.table]
                    if child.get(embed.fk_column) == parent_key and _matches(child, top)
                ]
                resolved_many = []
                for child in children:
                    item = self._materialize(embed.table, child, embed.columns, embed.embeds, deeper)
                    if item is not None:
                        resolved_many.append(item)
                if embed.inner and not resolved_many:
                    return None
                out[embed.alias] = resolved_many
            else:
                fk_value = row.get(embed.fk_column)
                target_pk = self._primary_key(embed.table)
                target = None
                if fk_value is not None:
                    target = next(
                        (t for t in self._tables[embed.table] if t.get(target_pk) == fk_value),
                        None,
                    )
                resolved = None
                if target is not None and _matches(target, top):
                    resolved = self._materialize(
                        embed.table, target, embed.columns, embed.embeds, deeper
                    )
                if embed.inner and resolved is None:
                    return None
                out[embed.alias] = resolved
        return out

    def _query(
        self,
        table: str,
        filters: Sequence[Filter],
        columns: str,
        embeds: Sequence[Embed],
        order: Optional[Order] = None,
    ) -> List[Row]:
        top, nested = split_filters(filters)
        source = self._tables[table]
        if order is not None:
            source = sorted(
                source,
                key=lambda r: (r.get(order.column) is None, r.get(order.column)),
                reverse=order.descending,
            )
        results = []
        for row in source:
            if not _matches(row, top):
                continue
            item = self._materialize(table, row, columns, embeds, nested)
            if item is not None:
                results.append(item)
        return results

    def _check_constraints(self, table: str, row: Row, ignore: Optional[Row] = None) -> None:
        pk = self._primary_key(table)
        others = [r for r in self._tables[table] if r is not ignore]
        if any(r.get(pk) == row.get(pk) for r in others):
            raise Conflict(
                f'duplicate key value violates unique constraint "{table}_pkey"',
                constraint=f"{table}_pkey",
            )
        table_def = self._defs.get(table)
        for name, cols in table_def.unique if table_def else ():
            key = tuple(row.get(c) for c in cols)
            if any(tuple(r.get(c) for c in cols) == key for r in others):
                raise Conflict(
                    f'duplicate key value violates unique constraint "{name}"',
                    constraint=name,
                )

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        columns: str = "*",
        embeds: Sequence[Embed] = (),
        order: Optional[Order] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Select rows from the in-memory table."""
        await self._begin("select", table)
        async with self._lock:
            results = self._query(table, filters, columns, embeds, order)
        if limit is not None:
            results = results[:limit]
        return results

    async def insert(self, table: str, row: Row) -> Row:
        """Insert a row, enforcing primary key and unique constraints."""
        await self._begin("insert", table)
        async with self._lock:
            stored = dict(row)
            pk = self._primary_key(table)
            if stored.get(pk) is None:
                stored[pk] = next(self._sequences[table])
            self._check_constraints(table, stored)
            self._tables[table].append(stored)
        logger.debug("In-memory insert", extra={"table": table, "pk": stored[pk]})
        return dict(stored)

    async def update(self, table: str, values: Row, filters: Sequence[Filter]) -> List[Row]:
        """Update matching rows and return them."""
        await self._begin("update", table)
        async with self._lock:
            matched = [r for r in self._tables[table] if _matches(r, filters)]
            for row in matched:
                candidate = {**row, **values}
                self._check_constraints(table, candidate, ignore=row)
            for row in matched:
                row.update(values)
            return [dict(r) for r in matched]

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Row]:
        """Delete matching rows and return them."""
        await self._begin("delete", table)
        async with self._lock:
            kept, removed = [], []
            for row in self._tables[table]:
                (removed if _matches(row, filters) else kept).append(row)
            self._tables[table] = kept
            return [dict(r) for r in removed]

    async def count(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        embeds: Sequence[Embed] = (),
    ) -> int:
        """Count matching rows."""
        await self._begin("count", table)
        async with self._lock:
            return len(self._query(table, filters, "*", embeds))

    async def close(self) -> None:
        """Clear all data."""
        self._tables.clear()
        logger.debug("InMemoryGateway closed")

    # Testing helpers

    def seed(self, table: str, rows: Iterable[Row]) -> None:
        """Load rows without constraint checks (testing helper)."""
        self._tables[table].extend(dict(r) for r in rows)

    def rows(self, table: str) -> List[Row]:
        """Get copies of all rows of a table (testing helper)."""
        return [dict(r) for r in self._tables[table]]

    def fail_next(self, exception: Exception) -> None:
        """Make the next operation raise exception (testing helper)."""
        self._pending_failure = exception

    def call_count(self, op: str, table: str) -> int:
        """Number of calls of op against table (testing helper)."""
        return sum(1 for c in self.calls if c == (op, table))
