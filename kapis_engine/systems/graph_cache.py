"""
Relationship graph cache.

Holds the world-state document read from the WorldGraphStore for a fixed
time-to-live. It is the only shared mutable state in the engine and is not
locked: two callers that miss at the same time both load, which is harmless
because loading (including default creation) is idempotent.

The cache never invalidates itself on writes the engine performs. Callers
that change the world-state document must call invalidate(), or run a
GraphWatcher that does it for them.
"""

import logging
import time
from typing import Callable

from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.store import WorldGraphStore

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


class RelationshipGraphCache:
    """TTL cache over WorldGraphStore.read()."""

    def __init__(
        self,
        store: WorldGraphStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        bus: EventBus | None = None,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._bus = bus or get_event_bus()
        self._graph: dict | None = None
        self._loaded_at: float | None = None

    def _cached(self) -> dict | None:
        """The cached graph if it is inside its TTL, else None."""
        # One read of each field; invalidate() may run on a watcher thread
        graph, loaded_at = self._graph, self._loaded_at
        if graph is None or loaded_at is None:
            return None
        if self._clock() - loaded_at >= self.ttl_seconds:
            return None
        return graph

    @property
    def is_fresh(self) -> bool:
        """Whether a cached graph exists and is inside its TTL."""
        return self._cached() is not None

    async def get(self) -> dict:
        """
        Return the relationship graph, loading it on a miss.

        Raises whatever the store raises when the load fails; nothing is
        cached in that case.
        """
        cached = self._cached()
        if cached is not None:
            return cached

        graph = await self.store.read()
        self._graph = graph
        self._loaded_at = self._clock()
        logger.debug(f"Loaded relationship graph ({len(graph.get('relationships') or {})} entities)")
        self._bus.emit(EventType.GRAPH_LOADED, entities=len(graph.get("relationships") or {}))
        return graph

    def invalidate(self) -> None:
        """Drop the cached graph; the next get() reloads."""
        self._graph = None
        self._loaded_at = None
        self._bus.emit(EventType.GRAPH_INVALIDATED)
