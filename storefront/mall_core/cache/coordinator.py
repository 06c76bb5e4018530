"""
Cache coordinator for Mall Core.

Holds the registry of cached read results (views) and marks them stale
after mutations, following the invalidation graph. It never talks to the
remote store itself: a stale view is refetched by whoever reads it next.

Invariants:
    - invalidate() only flips staleness flags; it never fetches
    - Each key's staleness is independent, so no locking is needed
    - A fetch that started before an invalidation is stored as stale,
      so a mutation is never hidden by an in-flight read
    - Listener failures are logged and never reach the mutating caller

How to change safely:
    - Keep after_mutation() the only entry point mutators use
    - Any new read path must go through get_or_fetch() to be invalidated
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from .graph import InvalidationGraph, MutationKind, ViewKey, build_default_graph

logger = logging.getLogger(__name__)

Listener = Callable[[ViewKey], None]


@dataclass
class CachedView:
    """A cached read result.

    Attributes:
        value: The reconstructed view
        stale: Whether the next access must refetch
        fetched_at: Monotonic time of the fetch
        generation: Invalidation generation the value was fetched under
    """

    value: Any
    stale: bool
    fetched_at: float
    generation: int


class CacheCoordinator:
    """Registry of derived views and their staleness.

    Example:
        >>> coordinator = CacheCoordinator()
        >>> await coordinator.get_or_fetch(("wishlist", "u1"), fetch_wishlist)
        >>> coordinator.after_mutation(MutationKind.WISHLIST_ADD, owner="u1", item=7)
        >>> coordinator.is_stale(("wishlist", "u1"))
        True
    """

    def __init__(
        self,
        graph: Optional[InvalidationGraph] = None,
        max_age_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the coordinator.

        Args:
            graph: Invalidation graph (default storefront graph if omitted)
            max_age_seconds: Age after which views are refetched (0 = never)
            clock: Monotonic clock, injectable for tests
        """
        self.graph = graph or build_default_graph()
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._views: Dict[ViewKey, CachedView] = {}
        # Only keys with a cached view or an in-flight fetch have entries
        self._generations: Dict[ViewKey, int] = {}
        self._in_flight: Dict[ViewKey, int] = {}
        self._listeners: Dict[ViewKey, List[Listener]] = defaultdict(list)

    def after_mutation(self, kind: MutationKind, **context: Any) -> List[ViewKey]:
        """Invalidate every view the graph links to a successful mutation.

        Args:
            kind: Mutation that succeeded
            **context: Graph template parameters (owner, item)

        Returns:
            Keys that were invalidated, family members included
        """
        keys, families = self.graph.resolve(kind, **context)
        invalidated = self.invalidate(keys)
        for family in families:
            invalidated.extend(self.invalidate_family(family))
        logger.debug(
            "Invalidated views after mutation",
            extra={"mutation": kind.value, "views": len(invalidated)},
        )
        return invalidated

    def invalidate(self, keys: Iterable[ViewKey]) -> List[ViewKey]:
        """Mark exact view keys stale.

        A key being fetched for the first time is bumped too, so that fetch
        is stored as stale.
        """
        invalidated = []
        for key in keys:
            if key in self._generations:
                self._generations[key] += 1
            view = self._views.get(key)
            if view is not None:
                view.stale = True
            invalidated.append(key)
            self._notify(key)
        return invalidated

    def invalidate_family(self, name: str) -> List[ViewKey]:
        """Mark every cached view whose key starts with name stale."""
        members = [key for key in self._views if key and key[0] == name]
        members.extend(
            key for key in self._listeners if key and key[0] == name and key not in self._views
        )
        return self.invalidate(members)

    def is_stale(self, key: ViewKey, max_age_seconds: Optional[float] = None) -> bool:
        """Whether the next access to key must refetch."""
        view = self._views.get(key)
        if view is None or view.stale:
            return True
        max_age = self.max_age_seconds if max_age_seconds is None else max_age_seconds
        return bool(max_age) and self._clock() - view.fetched_at >= max_age

    def peek(self, key: ViewKey) -> Optional[CachedView]:
        """Get the cached entry without fetching."""
        return self._views.get(key)

    async def get_or_fetch(
        self,
        key: ViewKey,
        fetcher: Callable[[], Awaitable[Any]],
        max_age_seconds: Optional[float] = None,
    ) -> Any:
        """Return the cached view, refetching it when stale.

        Args:
            key: View key
            fetcher: Coroutine function rebuilding the view
            max_age_seconds: Override of the coordinator-wide max age

        Returns:
            The view value

        Raises:
            Whatever fetcher raises; the cache is left unchanged
        """
        if not self.is_stale(key, max_age_seconds):
            return self._views[key].value

        generation = self._generations.setdefault(key, 0)
        self._in_flight[key] = self._in_flight.get(key, 0) + 1
        try:
            value = await fetcher()
            self._views[key] = CachedView(
                value=value,
                stale=self._generations[key] != generation,
                fetched_at=self._clock(),
                generation=generation,
            )
        finally:
            self._in_flight[key] -= 1
            if not self._in_flight[key]:
                del self._in_flight[key]
                if key not in self._views:
                    del self._generations[key]
        return value

    def subscribe(self, key: ViewKey, listener: Listener) -> Callable[[], None]:
        """Be told when key is invalidated.

        Returns:
            Callable that removes the listener
        """
        self._listeners[key].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[key]

        return unsubscribe

    def _notify(self, key: ViewKey) -> None:
        for listener in list(self._listeners.get(key, ())):
            try:
                listener(key)
            except Exception:
                logger.exception("View listener failed", extra={"view": repr(key)})

    def stale_keys(self) -> Set[ViewKey]:
        """All cached keys currently marked stale (testing helper)."""
        return {key for key, view in self._views.items() if view.stale}

    def tracked_keys(self) -> Set[ViewKey]:
        """Keys holding invalidation state (testing helper)."""
        return set(self._generations)

    def clear(self) -> None:
        """Drop every cached view."""
        self._views.clear()
        for key in list(self._generations):
            if key not in self._in_flight:
                del self._generations[key]
