"""
State-update generation for affected entities.

Each (entity type, change type) pair the engine understands produces one
section-level StateUpdate; anything else produces None.
"""

from __future__ import annotations

from ..state.documents import QUEST_LEDGER_PATH, WORLD_STATE_PATH, npc_document_path
from ..state.schema import AffectedEntity, EntityType, StateChange, StateUpdate

# relationship type -> (emotionalState, griefLevel)
EMOTIONAL_RESPONSES: dict[str, tuple[str, str]] = {
    "family": ("Grieving", "High"),
    "daughter": ("Grieving", "High"),
    "son": ("Grieving", "High"),
    "friend": ("Saddened", "Medium"),
    "ally": ("Saddened", "Medium"),
    "enemy": ("Relieved", "None"),
}

DEFAULT_RESPONSE = ("Neutral", "None")


def emotional_response(relationship_type: str) -> dict[str, str]:
    """How an NPC reacts to the death of someone they're related to."""
    state, grief = EMOTIONAL_RESPONSES.get(relationship_type, DEFAULT_RESPONSE)
    return {"emotionalState": state, "griefLevel": grief}


def npc_death_update(entity: AffectedEntity, change: StateChange) -> StateUpdate:
    return StateUpdate(
        file_path=npc_document_path(entity.entity_id),
        section="emotional_state",
        updates={
            **emotional_response(entity.relationship_type),
            "reason": f"Death of {change.primary_entity}",
        },
        timestamp=change.timestamp,
    )


def quest_activation_update(entity: AffectedEntity, change: StateChange) -> StateUpdate:
    return StateUpdate(
        file_path=QUEST_LEDGER_PATH,
        section=entity.entity_id,
        updates={
            "status": "Active",
            "activatedAt": change.timestamp,
            "activationReason": f"Triggered by: {change.primary_entity}",
        },
        timestamp=change.timestamp,
    )


def faction_update(entity: AffectedEntity, change: StateChange) -> StateUpdate:
    return StateUpdate(
        file_path=WORLD_STATE_PATH,
        section=f"factions.{entity.entity_id}",
        updates={
            "changeType": change.change_type,
            "updatedAt": change.timestamp,
        },
        timestamp=change.timestamp,
    )


def generate_state_update(entity: AffectedEntity, change: StateChange) -> StateUpdate | None:
    """
    Build the update an affected entity needs, or None if it needs none.

    NPCs only react to deaths; quests and factions react to any change.
    """
    if entity.entity_type == EntityType.NPC and change.is_death:
        return npc_death_update(entity, change)
    if entity.entity_type == EntityType.QUEST:
        return quest_activation_update(entity, change)
    if entity.entity_type == EntityType.FACTION:
        return faction_update(entity, change)
    return None


class UpdateGenerator:
    """Async wrapper so the propagator can swap in other generators."""

    async def generate_state_update(
        self,
        entity: AffectedEntity,
        change: StateChange,
    ) -> StateUpdate | None:
        return generate_state_update(entity, change)
