"""Tests for AffectedEntityResolver."""

import asyncio

from kapis_engine.state import EntityType, MemoryWorldGraphStore, UpdateType
from kapis_engine.systems import AffectedEntityResolver, RelationshipGraphCache


def _change(**rules):
    return {
        "changeType": "npc_death",
        "primaryEntity": "kolyan_indirovich",
        "propagationRules": rules,
    }


class FailingGraphStore(MemoryWorldGraphStore):
    async def read(self, create=True):
        raise OSError("permission denied")


class TestExpansion:
    """Edges become affected entities."""

    def test_all_rules_enabled_by_default(self, graph_cache):
        resolver = AffectedEntityResolver(graph_cache)
        result = asyncio.run(resolver.find_affected_entities(
            {"changeType": "npc_death", "primaryEntity": "kolyan_indirovich"},
        ))

        assert result.success is True
        assert [e.entity_id for e in result.entities] == [
            "ireena_kolyana", "ismark_kolyanovich", "escort_ireena", "village_council",
        ]

    def test_family_edges(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(_change()))
        ireena = result.entities[0]

        assert ireena.entity_type == EntityType.NPC
        assert ireena.relationship_type == "daughter"
        assert ireena.update_type == UpdateType.EMOTIONAL_STATE
        assert ireena.propagation_level == 1
        assert ireena.key == "npc:ireena_kolyana"

    def test_non_death_family_update_is_status(self, graph_cache):
        change = {"changeType": "faction_shift", "primaryEntity": "kolyan_indirovich"}
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(change))
        assert result.entities[0].update_type == UpdateType.STATUS

    def test_quest_and_faction_relationship_types(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(_change()))
        by_type = {e.entity_type: e for e in result.entities}

        assert by_type[EntityType.QUEST].relationship_type == "dependent_quest"
        assert by_type[EntityType.QUEST].update_type == UpdateType.QUEST_ACTIVATION
        assert by_type[EntityType.FACTION].relationship_type == "faction_member"
        assert by_type[EntityType.FACTION].update_type == UpdateType.FACTION_UPDATE

    def test_family_type_defaults(self, bus):
        store = MemoryWorldGraphStore(world={"relationships": {"a": {"family": [{"npcId": "b"}]}}})
        resolver = AffectedEntityResolver(RelationshipGraphCache(store, bus=bus))
        result = asyncio.run(resolver.find_affected_entities({"changeType": "npc_death", "primaryEntity": "a"}))
        assert result.entities[0].relationship_type == "family"


class TestRuleGating:
    """Disabled rules contribute nothing."""

    def test_no_quests(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(
            _change(affectQuests=False),
        ))
        assert result.entities
        assert not [e for e in result.entities if e.entity_type == EntityType.QUEST]

    def test_no_relationships(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(
            _change(affectRelationships=False),
        ))
        assert {e.entity_type for e in result.entities} == {EntityType.QUEST, EntityType.FACTION}

    def test_everything_disabled(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(
            _change(affectRelationships=False, affectQuests=False, affectFactions=False),
        ))
        assert result.success is True
        assert result.entities == []


class TestLocationFilter:
    """affectedLocations keeps listed locations and unplaced entities."""

    def test_filter_drops_other_locations(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(
            _change(affectedLocations=["vallaki"]),
        ))
        # Only the quest edge has no location
        assert [e.entity_id for e in result.entities] == ["escort_ireena"]

    def test_filter_keeps_matching(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(
            _change(affectedLocations=["village-of-barovia"]),
        ))
        assert len(result.entities) == 4

    def test_empty_filter_disabled(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(
            _change(affectedLocations=[]),
        ))
        assert len(result.entities) == 4


class TestDegradation:
    """Missing data is not an error."""

    def test_unknown_entity(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities(
            {"changeType": "npc_death", "primaryEntity": "strahd"},
        ))
        assert result.success is True
        assert result.entities == []

    def test_graph_unavailable(self, bus):
        resolver = AffectedEntityResolver(RelationshipGraphCache(FailingGraphStore(), bus=bus))
        result = asyncio.run(resolver.find_affected_entities(_change()))
        assert result.success is True
        assert result.entities == []

    def test_no_relationships_key(self, bus):
        store = MemoryWorldGraphStore(world={"factions": {}})
        resolver = AffectedEntityResolver(RelationshipGraphCache(store, bus=bus))
        result = asyncio.run(resolver.find_affected_entities(_change()))
        assert result.success is True
        assert result.entities == []

    def test_malformed_edges(self, bus):
        store = MemoryWorldGraphStore(world={"relationships": {"kolyan_indirovich": {"family": [{"type": "son"}]}}})
        resolver = AffectedEntityResolver(RelationshipGraphCache(store, bus=bus))
        result = asyncio.run(resolver.find_affected_entities(_change()))
        assert result.success is False
        assert "Malformed relationships" in result.error

    def test_invalid_change(self, graph_cache):
        result = asyncio.run(AffectedEntityResolver(graph_cache).find_affected_entities({"changeType": "npc_death"}))
        assert result.success is False
