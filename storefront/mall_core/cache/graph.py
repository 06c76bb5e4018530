"""
Invalidation graph for Mall Core.

The graph is the single, statically inspectable answer to "which derived
views does this mutation make stale?". It maps each MutationKind to a set
of view templates that are resolved against the mutation's context
(owner id, item key) into concrete view keys.

Invariants:
    - The graph is built once at startup and frozen before serving
    - Once frozen, no edges can be added
    - A template whose parameters the mutation cannot supply is skipped;
      the umbrella view registered next to it covers that case
    - Family templates stale every cached view of that name (all owners)

How to change safely:
    - Add a MutationKind and its edges in build_default_graph() together
    - Add a test asserting the new kind's exact fan-out
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

ViewKey = Tuple[Any, ...]


class MutationKind(Enum):
    """Every mutation the core performs."""

    CART_ADD = "cart_add"
    CART_UPDATE = "cart_update"
    CART_REMOVE = "cart_remove"
    WISHLIST_ADD = "wishlist_add"
    WISHLIST_REMOVE = "wishlist_remove"
    ORDER_STATUS_UPDATE = "order_status_update"


# View names
CART_VIEW = "cart"
WISHLIST_VIEW = "wishlist"
MEMBERSHIP_VIEWS = {"cart": "cart-check", "wishlist": "wishlist-check"}
USER_ORDERS_VIEW = "user-orders"
ADMIN_ORDERS_VIEW = "admin-orders"
APPROVAL_STATS_VIEW = "approval-stats"


class GraphFrozenError(Exception):
    """Raised when attempting to modify a frozen graph."""
    pass


@dataclass(frozen=True)
class ViewTemplate:
    """A parameterised view key.

    Attributes:
        name: View name, first element of the resolved key
        params: Context parameters appended to the key, in order
        family: Stale every cached key with this name instead of one key

    Example:
        >>> ViewTemplate("wishlist-check", ("owner", "item")).resolve(
        ...     {"owner": "u1", "item": 7})
        ('wishlist-check', 'u1', 7)
    """

    name: str
    params: Tuple[str, ...] = ()
    family: bool = False

    def resolve(self, context: Mapping[str, Any]) -> Optional[ViewKey]:
        """Build the concrete key, or None if a parameter is missing."""
        values = []
        for param in self.params:
            value = context.get(param)
            if value is None:
                return None
            values.append(value)
        return (self.name, *values)


def view_key(name: str, *params: Any) -> ViewKey:
    """Build a concrete view key."""
    return (name, *params)


class InvalidationGraph:
    """Static mapping of mutation kinds to the views they invalidate.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free

    Example:
        >>> graph = InvalidationGraph()
        >>> graph.add_edge(MutationKind.CART_ADD, ViewTemplate("cart", ("owner",)))
        >>> graph.freeze()
        >>> graph.resolve(MutationKind.CART_ADD, owner="u1")
        ([('cart', 'u1')], [])
    """

    def __init__(self) -> None:
        self._edges: Dict[MutationKind, List[ViewTemplate]] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the graph is frozen."""
        return self._frozen

    def add_edge(self, kind: MutationKind, *templates: ViewTemplate) -> None:
        """Register views that a mutation kind invalidates.

        Raises:
            GraphFrozenError: If the graph is frozen
        """
        with self._lock:
            if self._frozen:
                raise GraphFrozenError(
                    f"Cannot add edges for '{kind.value}': graph is frozen"
                )
            edges = self._edges.setdefault(kind, [])
            for template in templates:
                if template not in edges:
                    edges.append(template)

    def freeze(self) -> None:
        """Freeze the graph. Irreversible."""
        with self._lock:
            self._frozen = True
        logger.debug(
            "Invalidation graph frozen",
            extra={"mutation_kinds": len(self._edges)},
        )

    def templates(self, kind: MutationKind) -> Tuple[ViewTemplate, ...]:
        """Templates registered for a mutation kind."""
        return tuple(self._edges.get(kind, ()))

    def resolve(
        self,
        kind: MutationKind,
        **context: Any,
    ) -> Tuple[List[ViewKey], List[str]]:
        """Resolve a mutation into concrete keys and view families.

        Args:
            kind: The mutation that succeeded
            **context: Template parameters (owner, item, ...)

        Returns:
            Tuple of (exact view keys, family names)
        """
        keys: List[ViewKey] = []
        families: List[str] = []
        for template in self._edges.get(kind, ()):
            if template.family:
                families.append(template.name)
                continue
            key = template.resolve(context)
            if key is not None:
                keys.append(key)
        return keys, families

    def __iter__(self) -> Iterator[Tuple[MutationKind, Tuple[ViewTemplate, ...]]]:
        for kind, templates in self._edges.items():
            yield kind, tuple(templates)


def build_default_graph() -> InvalidationGraph:
    """Build and freeze the storefront's invalidation graph."""
    graph = InvalidationGraph()

    cart = ViewTemplate(CART_VIEW, ("owner",))
    cart_check = ViewTemplate(MEMBERSHIP_VIEWS["cart"], ("owner", "item"))
    cart_check_all = ViewTemplate(MEMBERSHIP_VIEWS["cart"], ("owner",))
    for kind in (MutationKind.CART_ADD, MutationKind.CART_UPDATE, MutationKind.CART_REMOVE):
        graph.add_edge(kind, cart, cart_check, cart_check_all)

    wishlist = ViewTemplate(WISHLIST_VIEW, ("owner",))
    wishlist_check = ViewTemplate(MEMBERSHIP_VIEWS["wishlist"], ("owner", "item"))
    wishlist_check_all = ViewTemplate(MEMBERSHIP_VIEWS["wishlist"], ("owner",))
    for kind in (MutationKind.WISHLIST_ADD, MutationKind.WISHLIST_REMOVE):
        graph.add_edge(kind, wishlist, wishlist_check, wishlist_check_all)

    graph.add_edge(
        MutationKind.ORDER_STATUS_UPDATE,
        ViewTemplate(ADMIN_ORDERS_VIEW),
        ViewTemplate(USER_ORDERS_VIEW, family=True),
    )

    graph.freeze()
    return graph
