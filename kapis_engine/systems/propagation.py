"""
World-state propagation.

Cascades one world change (typically an NPC death) through the relationship
graph: resolve the entities it touches, generate a section update for each,
and apply the whole batch at once.

Traversal invariants:
- Breadth-first, FIFO
- Each entity (keyed "entityType:entityId") is processed at most once, so
  cyclic graphs terminate
- Entities deeper than max_depth are skipped; deeper than the warning
  threshold are logged but still processed
- Only first-order neighbours are expanded unless max_cascade_levels > 1;
  deeper levels reuse the origin change's rules and never revisit the
  origin entity
"""

from __future__ import annotations

import logging
from collections import deque

from pydantic import ValidationError

from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import AffectedEntity, PropagationResult, StateChange, StateUpdate
from .applier import UpdateApplier
from .graph_cache import RelationshipGraphCache
from .resolver import AffectedEntityResolver, expand_edges
from .updates import UpdateGenerator


logger = logging.getLogger(__name__)


# ─── Configuration ───────────────────────────────────────────

MAX_PROPAGATION_DEPTH = 10
DEPTH_WARNING_THRESHOLD = 5
DEFAULT_CASCADE_LEVELS = 1

INVALID_CHANGE = "Invalid stateChange: missing changeType or primaryEntity"


class WorldStatePropagator:
    """
    Breadth-first propagation of a world change.

    Usage:
        propagator = WorldStatePropagator(resolver, UpdateGenerator(), applier)
        result = await propagator.propagate_change({
            "changeType": "npc_death",
            "primaryEntity": "kolyan_indirovich",
        })
    """

    def __init__(
        self,
        resolver: AffectedEntityResolver,
        generator: UpdateGenerator,
        applier: UpdateApplier,
        max_depth: int = MAX_PROPAGATION_DEPTH,
        warning_threshold: int = DEPTH_WARNING_THRESHOLD,
        max_cascade_levels: int = DEFAULT_CASCADE_LEVELS,
        bus: EventBus | None = None,
    ):
        self.resolver = resolver
        self.generator = generator
        self.applier = applier
        self.max_depth = max_depth
        self.warning_threshold = warning_threshold
        self.max_cascade_levels = max(1, max_cascade_levels)
        self._bus = bus or get_event_bus()

    @property
    def cache(self) -> RelationshipGraphCache:
        return self.resolver.cache

    def invalidate_cache(self) -> None:
        """Call after changing the world-state document outside the engine."""
        self.cache.invalidate()

    async def propagate_change(self, change: StateChange | dict | None) -> PropagationResult:
        """
        Propagate a change and apply every resulting update.

        Returns:
            PropagationResult. affected_count is the number of updates
            generated, which can be lower than the number of entities
            visited. Never raises.
        """
        try:
            if not isinstance(change, StateChange):
                change = StateChange.model_validate(change or {})
        except ValidationError:
            return PropagationResult(success=False, error=INVALID_CHANGE)

        try:
            return await self._propagate(change)
        except Exception as e:
            logger.exception(f"Propagation of {change.change_type} on {change.primary_entity} failed")
            return self._failed(change, f"WorldStatePropagator.propagate_change failed: {e}")

    async def _propagate(self, change: StateChange) -> PropagationResult:
        affected = await self.resolver.find_affected_entities(change)
        if not affected.success:
            return self._failed(change, affected.error)

        queue: deque[tuple[AffectedEntity, int]] = deque((e, 1) for e in affected.entities)
        visited: set[str] = set()
        updates: list[StateUpdate] = []
        max_depth = 0

        while queue:
            entity, depth = queue.popleft()
            key = entity.key

            if key in visited:
                continue
            if depth > self.max_depth:
                logger.warning(f"Maximum propagation depth ({self.max_depth}) reached for {key}")
                continue
            if depth > self.warning_threshold:
                logger.warning(
                    f"Propagation depth ({depth}) exceeds warning threshold "
                    f"({self.warning_threshold}) for {key}"
                )

            visited.add(key)
            max_depth = max(max_depth, depth)

            try:
                update = await self.generator.generate_state_update(entity, change)
            except Exception as e:
                logger.warning(f"Failed to generate state update for {key}: {e}")
                update = None
            if update is not None:
                updates.append(update)

            if depth < self.max_cascade_levels and depth < self.max_depth:
                for neighbour in await self._expand(entity, change, depth + 1):
                    if neighbour.key not in visited:
                        queue.append((neighbour, depth + 1))

        applied = await self.applier.apply_updates(updates)
        if not applied.success:
            return self._failed(change, applied.error)

        logger.info(
            f"Propagated {change.change_type} on {change.primary_entity}: "
            f"{len(updates)} updates, depth {max_depth}"
        )
        self._bus.emit(
            EventType.PROPAGATION_COMPLETED,
            change_type=change.change_type,
            primary_entity=change.primary_entity,
            affected=len(updates),
            depth=max_depth,
        )
        return PropagationResult(
            success=True,
            updates_applied=updates,
            propagation_depth=max_depth,
            affected_count=len(updates),
        )

    async def _expand(self, entity: AffectedEntity, change: StateChange, level: int) -> list[AffectedEntity]:
        """Neighbours of an affected entity, under the origin change's rules."""
        try:
            bundle = await self.resolver.edges_for(entity.entity_id)
        except Exception as e:
            logger.warning(f"Could not expand {entity.key}: {e}")
            return []
        if bundle is None:
            return []
        return [
            e for e in expand_edges(bundle, change, level)
            if e.entity_id != change.primary_entity
        ]

    def _failed(self, change: StateChange, error: str | None) -> PropagationResult:
        self._bus.emit(
            EventType.PROPAGATION_FAILED,
            change_type=change.change_type,
            primary_entity=change.primary_entity,
            error=error,
        )
        return PropagationResult(success=False, error=error)


def create_world_state_propagator(
    cache: RelationshipGraphCache,
    applier: UpdateApplier,
    max_depth: int = MAX_PROPAGATION_DEPTH,
    warning_threshold: int = DEPTH_WARNING_THRESHOLD,
    max_cascade_levels: int = DEFAULT_CASCADE_LEVELS,
) -> WorldStatePropagator:
    """Create a propagator with the default resolver and generator."""
    return WorldStatePropagator(
        resolver=AffectedEntityResolver(cache),
        generator=UpdateGenerator(),
        applier=applier,
        max_depth=max_depth,
        warning_threshold=warning_threshold,
        max_cascade_levels=max_cascade_levels,
    )
