"""
Mall Core service: the operations exposed to callers.

MallService composes the gateway, mutator, cache coordinator, read
reconstructor and aggregator into the storefront's operations. Every
per-owner operation takes the owner id explicitly; resolving "the current
user" is the caller's job (see identity.py).

Invariants:
    - Reads go through the cache coordinator, writes through the mutator
    - Membership checks answer False rather than raising on absence
    - Order status updates invalidate staff and customer order views
    - Reads return copies; callers never hold the cached value itself

How to change safely:
    - New reads need a view key and graph edges before they are cached
    - Keep operations thin; logic belongs in mutate/, read/ and stats/
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, FrozenSet, List, Optional

from .cache.coordinator import CacheCoordinator
from .cache.graph import (
    ADMIN_ORDERS_VIEW,
    APPROVAL_STATS_VIEW,
    MEMBERSHIP_VIEWS,
    USER_ORDERS_VIEW,
    MutationKind,
    view_key,
)
from .config import AppConfig
from .errors import AuthenticationRequired, NotFound, ValidationError
from .gateway.base import Eq, Order as OrderBy, Row, StoreGateway
from .mutate.mutator import CollectionMutator
from .read.media import enrich_with_media
from .read.orders import Order, group_order_lines
from .schema.tables import (
    ACCOUNT_ID,
    ACCOUNT_OWNER,
    ACCOUNT_TABLE,
    CUSTOMER_EMBED,
    ORDER_ACCOUNT_FK,
    ORDER_DATE,
    ORDER_LINE_TABLE,
    ORDER_NUMBER,
    ORDER_STATUS,
    VARIANT_EMBED,
    CollectionDef,
    CollectionType,
    audit_fields,
    get_collection,
)
from .stats.approvals import ApprovalSummary, compute_approval_stats

logger = logging.getLogger(__name__)


class MallService:
    """The storefront core's operations.

    Example:
        >>> service = MallService(gateway, coordinator, mutator)
        >>> await service.add_to_collection("wishlist", "u1", 42)
        >>> await service.check_membership("wishlist", "u1", 42)
        True
    """

    def __init__(
        self,
        gateway: StoreGateway,
        coordinator: CacheCoordinator,
        mutator: CollectionMutator,
        config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.gateway = gateway
        self.coordinator = coordinator
        self.mutator = mutator
        self.config = config or AppConfig()
        self._clock = clock

    # Collections

    async def add_to_collection(
        self,
        collection_type: CollectionType | str,
        owner_id: str,
        item_key: Any,
        quantity: int = 1,
    ) -> Row:
        """Add an item (cart: merge quantities; wishlist: Conflict on repeat)."""
        return await self.mutator.add_item(collection_type, owner_id, item_key, quantity)

    async def update_collection_entry(
        self,
        collection_type: CollectionType | str,
        owner_id: str,
        entry_id: Any,
        quantity: int,
    ) -> Row:
        """Set the quantity of one of the owner's entries."""
        return await self.mutator.update_item(collection_type, owner_id, entry_id, quantity)

    async def remove_from_collection(
        self,
        collection_type: CollectionType | str,
        owner_id: str,
        entry_id: Any = None,
        item_key: Any = None,
    ) -> Row:
        """Remove one of the owner's entries by entry id or item key."""
        return await self.mutator.remove_item(
            collection_type, owner_id, entry_id=entry_id, item_key=item_key
        )

    async def list_collection(
        self, collection_type: CollectionType | str, owner_id: str
    ) -> List[Row]:
        """The owner's entries with their variant and media.

        Raises:
            AuthenticationRequired: If owner_id is empty
            ValidationError: If the collection type is unknown
            RemoteFailure: On store errors
        """
        collection = self._collection(collection_type)
        if not owner_id:
            raise AuthenticationRequired()

        async def fetch() -> List[Row]:
            rows = await self.gateway.select(
                collection.table,
                [Eq(collection.owner_column, owner_id)],
                embeds=(VARIANT_EMBED,),
            )
            return await enrich_with_media(self.gateway, rows)

        rows = await self.coordinator.get_or_fetch(
            view_key(collection.type.value, owner_id), fetch
        )
        return copy.deepcopy(rows)

    async def list_membership(
        self, collection_type: CollectionType | str, owner_id: Optional[str]
    ) -> FrozenSet[Any]:
        """Item keys present in the owner's collection (empty when signed out)."""
        collection = self._collection(collection_type)
        if not owner_id:
            return frozenset()

        async def fetch() -> FrozenSet[Any]:
            rows = await self.gateway.select(
                collection.table,
                [Eq(collection.owner_column, owner_id)],
                columns=collection.item_column,
            )
            return frozenset(row[collection.item_column] for row in rows)

        return await self.coordinator.get_or_fetch(
            view_key(MEMBERSHIP_VIEWS[collection.type.value], owner_id), fetch
        )

    async def check_membership(
        self,
        collection_type: CollectionType | str,
        owner_id: Optional[str],
        item_key: Any,
    ) -> bool:
        """Whether item_key is in the owner's collection.

        Absence, a missing owner or a missing item key all answer False.
        """
        collection = self._collection(collection_type)
        if not owner_id or item_key is None:
            return False

        async def fetch() -> bool:
            rows = await self.gateway.select(
                collection.table,
                [Eq(collection.owner_column, owner_id), Eq(collection.item_column, item_key)],
                columns=collection.id_column,
                limit=1,
            )
            return bool(rows)

        return await self.coordinator.get_or_fetch(
            view_key(MEMBERSHIP_VIEWS[collection.type.value], owner_id, item_key), fetch
        )

    # Orders

    async def list_grouped_orders(self, owner_id: Optional[str] = None) -> List[Order]:
        """Orders grouped by order number, newest first.

        With an owner id, only that customer's orders; without, every order
        with its customer snapshot (staff view).
        """
        if owner_id:
            orders = await self.coordinator.get_or_fetch(
                view_key(USER_ORDERS_VIEW, owner_id),
                lambda: self._fetch_customer_orders(owner_id),
            )
        else:
            orders = await self.coordinator.get_or_fetch(
                view_key(ADMIN_ORDERS_VIEW), self._fetch_all_orders
            )
        return copy.deepcopy(orders)

    async def _fetch_customer_orders(self, owner_id: str) -> List[Order]:
        accounts = await self.gateway.select(
            ACCOUNT_TABLE, [Eq(ACCOUNT_OWNER, owner_id)], columns=ACCOUNT_ID, limit=1
        )
        if not accounts:
            logger.debug("No account for owner; no orders", extra={"owner_id": owner_id})
            return []

        rows = await self.gateway.select(
            ORDER_LINE_TABLE,
            [Eq(ORDER_ACCOUNT_FK, accounts[0][ACCOUNT_ID])],
            embeds=(VARIANT_EMBED,),
            order=OrderBy(ORDER_DATE, descending=True),
        )
        return group_order_lines(await enrich_with_media(self.gateway, rows))

    async def _fetch_all_orders(self) -> List[Order]:
        rows = await self.gateway.select(
            ORDER_LINE_TABLE,
            embeds=(VARIANT_EMBED, CUSTOMER_EMBED),
            order=OrderBy(ORDER_DATE, descending=True),
        )
        return group_order_lines(await enrich_with_media(self.gateway, rows))

    async def update_order_status(
        self, actor_id: str, order_number: Any, status: str
    ) -> Order:
        """Set the status of every line of an order.

        Returns:
            The updated order

        Raises:
            AuthenticationRequired: If actor_id is empty
            ValidationError: If status is empty
            NotFound: If no line carries order_number
            RemoteFailure: On store errors
        """
        if not actor_id:
            raise AuthenticationRequired()
        if not status or not str(status).strip():
            raise ValidationError("Order status is required", field_name="status")
        return await self.mutator.complete(
            self._update_order_status(actor_id, order_number, status)
        )

    async def _update_order_status(
        self, actor_id: str, order_number: Any, status: str
    ) -> Order:
        rows = await self.gateway.update(
            ORDER_LINE_TABLE,
            {ORDER_STATUS: status, **audit_fields("UPDATE", actor_id, self._clock())},
            [Eq(ORDER_NUMBER, order_number)],
        )
        if not rows:
            raise NotFound(
                f"Order not found: {order_number}",
                resource_type="order",
                resource_id=order_number,
            )

        self.coordinator.after_mutation(MutationKind.ORDER_STATUS_UPDATE)
        logger.debug(
            "Order status updated",
            extra={"order_number": order_number, "status": status, "lines": len(rows)},
        )
        return group_order_lines(rows)[0]

    # Back-office

    async def get_approval_stats(self) -> ApprovalSummary:
        """Approval summary, cached for the configured max age."""
        return await self.coordinator.get_or_fetch(
            view_key(APPROVAL_STATS_VIEW),
            lambda: compute_approval_stats(self.gateway),
            max_age_seconds=self.config.cache.approval_stats_max_age_seconds,
        )

    async def close(self) -> None:
        await self.mutator.drain()
        await self.gateway.close()

    @staticmethod
    def _collection(collection_type: CollectionType | str) -> CollectionDef:
        try:
            return get_collection(collection_type)
        except ValueError:
            raise ValidationError(
                f"Unknown collection type: {collection_type}",
                field_name="collection_type",
            )
