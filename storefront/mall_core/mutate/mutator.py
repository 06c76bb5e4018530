"""
Collection mutator for Mall Core.

Adds, updates and removes entries of per-owner collections (cart,
wishlist) while keeping at most one entry per (owner, item).

Add is check-then-act: look the entry up, merge into it when present,
insert otherwise. Two concurrent adds can both observe "absent"; the store's
unique constraint on (owner, item) rejects the second insert, and the
mutator retries that add as a merge instead of surfacing the conflict.

Invariants:
    - Every update and delete is scoped by both entry id and owner id
    - Views are invalidated after a successful write and never on failure
    - A write and its invalidation run to completion even if the caller
      is cancelled mid-flight
    - Quantity merges are compare-and-set on the previous quantity, so a
      concurrent merge is retried rather than lost
    - A lost compare-and-set is always re-read and retried; only
      unique-constraint insert failures and id collisions are bounded

How to change safely:
    - New collection types need a CollectionDef and MutationKind edges
    - Keep error types unchanged; callers show them to the user verbatim
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, TypeVar

from ..cache.coordinator import CacheCoordinator
from ..cache.graph import MutationKind
from ..config import MutatorConfig
from ..errors import AuthenticationRequired, Conflict, NotFound, ValidationError
from ..gateway.base import Eq, Row, StoreGateway
from ..schema.tables import (
    CollectionDef,
    CollectionType,
    audit_fields,
    get_collection,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MUTATION_KINDS: Dict[tuple, MutationKind] = {
    (CollectionType.CART, "add"): MutationKind.CART_ADD,
    (CollectionType.CART, "update"): MutationKind.CART_UPDATE,
    (CollectionType.CART, "remove"): MutationKind.CART_REMOVE,
    (CollectionType.WISHLIST, "add"): MutationKind.WISHLIST_ADD,
    (CollectionType.WISHLIST, "remove"): MutationKind.WISHLIST_REMOVE,
}


def random_timestamp_id() -> int:
    """Generate an entry id as random [0, 1e6) plus epoch milliseconds.

    Two ids collide only when r1 + t1 == r2 + t2, about 1 in a million
    per pair of inserts landing within the same ~17 minutes.
    """
    return random.randrange(1_000_000) + int(time.time() * 1000)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _pkey_constraint(collection: CollectionDef) -> str:
    return f"{collection.table}_pkey"


class CollectionMutator:
    """Mutates per-owner collections through the store gateway.

    Example:
        >>> mutator = CollectionMutator(gateway, coordinator)
        >>> await mutator.add_item("cart", "u1", 42, quantity=2)
        {'ypanierid': ..., 'yuseridfk': 'u1', 'yvarprodidfk': 42, 'ypanierqte': 2, ...}
    """

    def __init__(
        self,
        gateway: StoreGateway,
        coordinator: CacheCoordinator,
        config: Optional[MutatorConfig] = None,
        id_factory: Optional[Callable[[], Any]] = random_timestamp_id,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the mutator.

        Args:
            gateway: Remote store gateway
            coordinator: Cache coordinator notified after each write
            config: Retry configuration
            id_factory: Entry id generator; None lets the store assign ids
            clock: UTC clock used for audit timestamps
        """
        self.gateway = gateway
        self.coordinator = coordinator
        self.config = config or MutatorConfig()
        self._id_factory = id_factory if self.config.client_generated_ids else None
        self._clock = clock
        self._pending: Set[asyncio.Future] = set()

    async def add_item(
        self,
        collection_type: CollectionType | str,
        owner_id: str,
        item_key: Any,
        quantity: int = 1,
    ) -> Row:
        """Add an item to an owner's collection.

        A repeat add merges into the existing entry: cart quantities are
        summed, a wishlist refuses the duplicate.

        Args:
            collection_type: Collection to add to
            owner_id: Owning user id
            item_key: Variant id
            quantity: Quantity to add (cart only)

        Returns:
            The persisted entry

        Raises:
            AuthenticationRequired: If owner_id is empty
            ValidationError: If quantity is not a positive integer
            Conflict: If the item is already in a set collection
            RemoteFailure: On store errors
        """
        collection = self._collection(collection_type)
        self._require_owner(owner_id)
        if collection.merges_on_add:
            self._check_quantity(quantity)
        return await self.complete(self._add(collection, owner_id, item_key, quantity))

    async def _add(
        self, collection: CollectionDef, owner_id: str, item_key: Any, quantity: int
    ) -> Row:
        insert_conflicts = 0
        while True:
            existing = await self._find_entry(collection, owner_id, item_key)
            if existing is not None:
                entry = await self._merge(collection, owner_id, existing, quantity)
                if entry is not None:
                    break
                # Another writer changed the entry first; re-read and merge again
                logger.info(
                    "Entry changed during merge; retrying",
                    extra={"table": collection.table, "owner_id": owner_id},
                )
                continue

            try:
                entry = await self._insert(collection, owner_id, item_key, quantity)
                break
            except Conflict as exc:
                insert_conflicts += 1
                if (
                    exc.constraint != collection.unique_constraint
                    or insert_conflicts >= self.config.max_merge_attempts
                ):
                    raise
                logger.info(
                    "Insert raced a concurrent add; retrying as merge",
                    extra={"table": collection.table, "owner_id": owner_id, "attempt": insert_conflicts},
                )

        self._invalidate(collection, "add", owner_id, item_key)
        logger.debug(
            "Collection item added",
            extra={"table": collection.table, "owner_id": owner_id, "entry_id": entry.get(collection.id_column)},
        )
        return entry

    async def update_item(
        self,
        collection_type: CollectionType | str,
        owner_id: str,
        entry_id: Any,
        quantity: int,
    ) -> Row:
        """Set the quantity of one of the owner's entries.

        Raises:
            AuthenticationRequired: If owner_id is empty
            ValidationError: If the collection has no quantity or quantity is invalid
            NotFound: If no entry matches both entry_id and owner_id
            RemoteFailure: On store errors
        """
        collection = self._collection(collection_type)
        self._require_owner(owner_id)
        if not collection.merges_on_add:
            raise ValidationError(
                f"{collection.type.value} entries have no quantity",
                field_name="quantity",
            )
        self._check_quantity(quantity)
        return await self.complete(self._update(collection, owner_id, entry_id, quantity))

    async def _update(
        self, collection: CollectionDef, owner_id: str, entry_id: Any, quantity: int
    ) -> Row:
        rows = await self.gateway.update(
            collection.table,
            {collection.quantity_column: quantity, **self._audit("UPDATE", owner_id)},
            [Eq(collection.id_column, entry_id), Eq(collection.owner_column, owner_id)],
        )
        if not rows:
            raise NotFound(
                f"{collection.type.value} entry not found: {entry_id}",
                resource_type=collection.table,
                resource_id=entry_id,
            )

        entry = rows[0]
        self._invalidate(collection, "update", owner_id, entry.get(collection.item_column))
        logger.debug(
            "Collection entry updated",
            extra={"table": collection.table, "owner_id": owner_id, "entry_id": entry_id},
        )
        return entry

    async def remove_item(
        self,
        collection_type: CollectionType | str,
        owner_id: str,
        entry_id: Any = None,
        item_key: Any = None,
    ) -> Row:
        """Remove one of the owner's entries by entry id or item key.

        Returns:
            The deleted entry

        Raises:
            AuthenticationRequired: If owner_id is empty
            ValidationError: If neither entry_id nor item_key is given
            NotFound: If nothing matched for this owner
            RemoteFailure: On store errors
        """
        collection = self._collection(collection_type)
        self._require_owner(owner_id)
        if entry_id is None and item_key is None:
            raise ValidationError(
                "Either entry_id or item_key is required",
                field_name="entry_id",
            )

        filters = [Eq(collection.owner_column, owner_id)]
        if entry_id is not None:
            filters.append(Eq(collection.id_column, entry_id))
        if item_key is not None:
            filters.append(Eq(collection.item_column, item_key))
        return await self.complete(self._remove(collection, owner_id, filters, entry_id, item_key))

    async def _remove(
        self,
        collection: CollectionDef,
        owner_id: str,
        filters: List[Eq],
        entry_id: Any,
        item_key: Any,
    ) -> Row:
        rows = await self.gateway.delete(collection.table, filters)
        if not rows:
            raise NotFound(
                f"{collection.type.value} entry not found",
                resource_type=collection.table,
                resource_id=entry_id if entry_id is not None else item_key,
            )

        for removed_key in {row.get(collection.item_column) for row in rows}:
            self._invalidate(collection, "remove", owner_id, removed_key)
        logger.debug(
            "Collection entry removed",
            extra={"table": collection.table, "owner_id": owner_id, "removed": len(rows)},
        )
        return rows[0]

    async def complete(self, write: Awaitable[T]) -> T:
        """Run a write and its invalidation as one unit.

        The unit runs in its own task. Cancelling the caller stops it from
        waiting but not the unit, so a committed write is still followed by
        its invalidation.
        """
        task = asyncio.ensure_future(write)
        self._pending.add(task)
        task.add_done_callback(self._write_done)
        return await asyncio.shield(task)

    async def drain(self) -> None:
        """Wait for writes still running after their callers went away."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _write_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        # Retrieved here so an abandoned write's error is logged, not warned about
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Collection write failed", extra={"error": repr(task.exception())})

    async def _find_entry(
        self, collection: CollectionDef, owner_id: str, item_key: Any
    ) -> Optional[Row]:
        rows = await self.gateway.select(
            collection.table,
            [Eq(collection.owner_column, owner_id), Eq(collection.item_column, item_key)],
            limit=1,
        )
        return rows[0] if rows else None

    async def _merge(
        self, collection: CollectionDef, owner_id: str, existing: Row, quantity: int
    ) -> Optional[Row]:
        """Merge an add into an existing entry; None if the entry moved underneath."""
        if not collection.merges_on_add:
            raise Conflict(
                f"Item already in {collection.type.value}",
                constraint=collection.unique_constraint,
            )

        current = existing.get(collection.quantity_column) or 0
        rows = await self.gateway.update(
            collection.table,
            {collection.quantity_column: current + quantity, **self._audit("UPDATE", owner_id)},
            [
                Eq(collection.id_column, existing[collection.id_column]),
                Eq(collection.owner_column, owner_id),
                Eq(collection.quantity_column, current),
            ],
        )
        return rows[0] if rows else None

    async def _insert(
        self, collection: CollectionDef, owner_id: str, item_key: Any, quantity: int
    ) -> Row:
        row: Row = {
            collection.owner_column: owner_id,
            collection.item_column: item_key,
            **self._audit("INSERT", owner_id),
        }
        if collection.quantity_column:
            row[collection.quantity_column] = quantity

        attempts = self.config.max_insert_attempts if self._id_factory else 1
        attempt = 1
        while True:
            if self._id_factory is not None:
                row[collection.id_column] = self._id_factory()
            try:
                return await self.gateway.insert(collection.table, row)
            except Conflict as exc:
                if exc.constraint != _pkey_constraint(collection) or attempt >= attempts:
                    raise
                logger.info(
                    "Generated entry id collided; retrying with a fresh id",
                    extra={"table": collection.table, "attempt": attempt},
                )
                attempt += 1

    def _audit(self, action: str, owner_id: str) -> Dict[str, Any]:
        return audit_fields(action, owner_id, self._clock())

    def _invalidate(
        self, collection: CollectionDef, op: str, owner_id: str, item_key: Any
    ) -> List[tuple]:
        kind = _MUTATION_KINDS[(collection.type, op)]
        return self.coordinator.after_mutation(kind, owner=owner_id, item=item_key)

    @staticmethod
    def _collection(collection_type: CollectionType | str) -> CollectionDef:
        try:
            return get_collection(collection_type)
        except ValueError:
            raise ValidationError(
                f"Unknown collection type: {collection_type}",
                field_name="collection_type",
            )

    @staticmethod
    def _require_owner(owner_id: str) -> None:
        if not owner_id:
            raise AuthenticationRequired()

    @staticmethod
    def _check_quantity(quantity: Any) -> None:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(
                "Quantity must be a positive integer",
                field_name="quantity",
            )
