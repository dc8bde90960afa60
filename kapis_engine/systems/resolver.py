"""
Affected-entity resolution.

Given a world change, look up the changed entity's edges in the
relationship graph and turn each edge enabled by the change's propagation
rules into an AffectedEntity.

Graph shape (world-state.yaml):

    relationships:
      kolyan_indirovich:
        family:
          - {npcId: ireena_kolyana, type: daughter}
        dependent_quests:
          - {questId: escort_ireena, trigger: death}
        factions:
          - {factionId: village_council}
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from ..state.schema import (
    AffectedEntitiesResult,
    AffectedEntity,
    EdgeBundle,
    EntityType,
    StateChange,
    UpdateType,
)
from .graph_cache import RelationshipGraphCache

logger = logging.getLogger(__name__)


def expand_edges(bundle: EdgeBundle, change: StateChange, level: int = 1) -> list[AffectedEntity]:
    """
    Turn one entity's edges into affected entities, gated by the change's rules.

    Order is family, then dependent quests, then factions, each in edge order.
    """
    rules = change.propagation_rules
    entities: list[AffectedEntity] = []

    if rules.affect_relationships:
        update_type = UpdateType.EMOTIONAL_STATE if change.is_death else UpdateType.STATUS
        for edge in bundle.family:
            entities.append(AffectedEntity(
                entity_id=edge.npc_id,
                entity_type=EntityType.NPC,
                relationship_type=edge.type or "family",
                propagation_level=level,
                update_type=update_type,
                location_id=edge.location_id,
            ))

    if rules.affect_quests:
        for edge in bundle.dependent_quests:
            entities.append(AffectedEntity(
                entity_id=edge.quest_id,
                entity_type=EntityType.QUEST,
                relationship_type="dependent_quest",
                propagation_level=level,
                update_type=UpdateType.QUEST_ACTIVATION,
                location_id=edge.location_id,
            ))

    if rules.affect_factions:
        for edge in bundle.factions:
            entities.append(AffectedEntity(
                entity_id=edge.faction_id,
                entity_type=EntityType.FACTION,
                relationship_type="faction_member",
                propagation_level=level,
                update_type=UpdateType.FACTION_UPDATE,
                location_id=edge.location_id,
            ))

    return filter_by_location(entities, rules.affected_locations)


def filter_by_location(
    entities: list[AffectedEntity],
    allowed: list[str] | None,
) -> list[AffectedEntity]:
    """
    Drop entities placed outside the allow-list.

    An empty or missing allow-list keeps everything. Entities with no
    location are kept: nothing says they are outside.
    """
    if not allowed:
        return entities
    allowed_set = set(allowed)
    return [e for e in entities if e.location_id is None or e.location_id in allowed_set]


class AffectedEntityResolver:
    """Finds the entities a change reaches through the relationship graph."""

    def __init__(self, cache: RelationshipGraphCache):
        self.cache = cache

    async def edges_for(self, entity_id: str) -> EdgeBundle | None:
        """
        Edges leaving an entity, or None when it has none.

        Raises ValidationError for a malformed edge bundle and whatever the
        cache raises when the graph can't be loaded.
        """
        graph = await self.cache.get()
        relationships = graph.get("relationships") if isinstance(graph, dict) else None
        if not isinstance(relationships, dict):
            return None

        raw = relationships.get(entity_id)
        if not raw:
            return None
        return EdgeBundle.model_validate(raw)

    async def find_affected_entities(
        self,
        change: StateChange | dict,
        level: int = 1,
    ) -> AffectedEntitiesResult:
        """
        First-order entities affected by a change.

        A missing graph or an entity without edges is not an error: both
        give an empty, successful result.
        """
        try:
            if not isinstance(change, StateChange):
                change = StateChange.model_validate(change)
        except ValidationError:
            return AffectedEntitiesResult(
                success=False,
                error="Invalid stateChange: missing changeType or primaryEntity",
            )

        try:
            bundle = await self.edges_for(change.primary_entity)
        except ValidationError as e:
            return AffectedEntitiesResult(
                success=False,
                error=f"Malformed relationships for {change.primary_entity}: {e}",
            )
        except Exception as e:
            logger.warning(f"Relationship graph unavailable, no propagation: {e}")
            return AffectedEntitiesResult(success=True)

        if bundle is None:
            return AffectedEntitiesResult(success=True)

        return AffectedEntitiesResult(
            success=True,
            entities=expand_edges(bundle, change, level),
        )
