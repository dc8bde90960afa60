"""
Pydantic models for the world engine.

Documents on disk use camelCase keys (eventId, npcId, stateChanges); models
expose snake_case attributes and accept either spelling on input. Serialize
with model_dump(by_alias=True) to get the on-disk shape back.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def now_iso() -> str:
    """Current local time as an ISO-8601 string."""
    return datetime.now().isoformat()


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class EffectKind(str, Enum):
    NPC_STATUS = "npc_status"
    STATE_UPDATE = "state_update"
    QUEST_TRIGGER = "quest_trigger"


class EventStatus(str, Enum):
    PENDING = "pending"
    TRIGGERED = "triggered"
    COMPLETED = "completed"
    FAILED = "failed"


class ErrorType(str, Enum):
    INVALID_INPUT = "invalid_input"
    EVENT_DEFINITION_LOAD_FAILED = "event_definition_load_failed"
    EFFECT_APPLICATION_FAILED = "effect_application_failed"
    UNEXPECTED_ERROR = "unexpected_error"


class EntityType(str, Enum):
    NPC = "npc"
    QUEST = "quest"
    FACTION = "faction"


class UpdateType(str, Enum):
    EMOTIONAL_STATE = "emotional_state"
    STATUS = "status"
    QUEST_ACTIVATION = "quest_activation"
    FACTION_UPDATE = "faction_update"


class ChangeType(str, Enum):
    """Change types the engine knows by name. Others pass through as strings."""
    NPC_DEATH = "npc_death"
    LOCATION_DESTROYED = "location_destroyed"
    FACTION_SHIFT = "faction_shift"


class CamelModel(BaseModel):
    """Base for models that mirror camelCase documents."""
    model_config = ConfigDict(populate_by_name=True)


# -----------------------------------------------------------------------------
# Events and effects
# -----------------------------------------------------------------------------

class ScheduledEvent(CamelModel):
    """
    A triggered calendar entry handed to the executor.

    Only event_id and location_id are required; the calendar may carry any
    other bookkeeping fields, which are kept.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event_id: str = Field(alias="eventId", min_length=1)
    location_id: str = Field(alias="locationId", min_length=1)
    name: str | None = None
    trigger_date: str | None = Field(default=None, alias="triggerDate")
    trigger_time: str | None = Field(default=None, alias="triggerTime")
    status: EventStatus = EventStatus.PENDING


class EventDefinition(CamelModel):
    """
    Authored description of a narrative event.

    Effects stay as raw entries here: each mapping is validated against its
    kind's model only when it is applied, so a malformed effect fails the
    execution rather than the definition load. Entries that aren't mappings
    are skipped like unknown kinds.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    event_id: str = Field(alias="eventId")
    name: str = ""
    description: str = ""
    effects: list[Any] = Field(default_factory=list)
    narrative_template: str | None = Field(default=None, alias="narrativeTemplate")


class NpcStatusEffect(CamelModel):
    type: Literal["npc_status"] = "npc_status"
    npc_id: str = Field(alias="npcId", min_length=1)
    status: str = Field(min_length=1)


class StateUpdateEffect(CamelModel):
    type: Literal["state_update"] = "state_update"
    location_id: str | None = Field(default=None, alias="locationId")
    state_changes: dict = Field(alias="stateChanges")


class QuestTriggerEffect(CamelModel):
    type: Literal["quest_trigger"] = "quest_trigger"
    quest_id: str = Field(alias="questId", min_length=1)
    new_status: str = Field(alias="newStatus", min_length=1)


class GameState(CamelModel):
    """Caller-side context for an execution. Unknown keys are kept."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    player_present: bool = Field(default=False, alias="playerPresent")

    @field_validator("player_present", mode="before")
    @classmethod
    def _missing_means_absent(cls, value: Any) -> Any:
        return False if value is None else value


class ExecutionResult(CamelModel):
    """
    Outcome of executing one event.

    effects_applied and state_updates are only populated on full success.
    """
    success: bool
    executed_at: str = Field(default_factory=now_iso, alias="executedAt")
    effects_applied: list[dict] = Field(default_factory=list, alias="effectsApplied")
    state_updates: list[dict] = Field(default_factory=list, alias="stateUpdates")
    execution_time_ms: float = Field(default=0.0, alias="executionTimeMs")
    narrative: str | None = None
    error: str | None = None
    error_type: ErrorType | None = Field(default=None, alias="errorType")


# -----------------------------------------------------------------------------
# Location state
# -----------------------------------------------------------------------------

class LocationState(BaseModel):
    """Frontmatter of a location's State.md."""
    visited: bool = False
    discovered_items: list = Field(default_factory=list)
    completed_events: list = Field(default_factory=list)
    npc_states: dict = Field(default_factory=dict)
    custom_state: dict = Field(default_factory=dict)
    last_updated: str | None = None


# -----------------------------------------------------------------------------
# Propagation
# -----------------------------------------------------------------------------

class PropagationRules(CamelModel):
    affect_relationships: bool = Field(default=True, alias="affectRelationships")
    affect_quests: bool = Field(default=True, alias="affectQuests")
    affect_factions: bool = Field(default=True, alias="affectFactions")
    # Allow-list of location ids; None or empty disables the filter
    affected_locations: list[str] | None = Field(default=None, alias="affectedLocations")


class StateChange(CamelModel):
    """A world change to cascade through the relationship graph."""
    change_type: str = Field(alias="changeType", min_length=1)
    primary_entity: str = Field(alias="primaryEntity", min_length=1)
    source_location_id: str | None = Field(default=None, alias="sourceLocationId")
    timestamp: str = Field(default_factory=now_iso)
    propagation_rules: PropagationRules = Field(
        default_factory=PropagationRules, alias="propagationRules",
    )

    @property
    def is_death(self) -> bool:
        return self.change_type == ChangeType.NPC_DEATH.value


class FamilyEdge(CamelModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    npc_id: str = Field(alias="npcId")
    type: str = "family"
    location_id: str | None = Field(default=None, alias="locationId")


class QuestEdge(CamelModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    quest_id: str = Field(alias="questId")
    trigger: str | None = None
    location_id: str | None = Field(default=None, alias="locationId")


class FactionEdge(CamelModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    faction_id: str = Field(alias="factionId")
    location_id: str | None = Field(default=None, alias="locationId")


class EdgeBundle(BaseModel):
    """One entity's outgoing edges in the relationship graph."""
    family: list[FamilyEdge] = Field(default_factory=list)
    dependent_quests: list[QuestEdge] = Field(default_factory=list)
    factions: list[FactionEdge] = Field(default_factory=list)


def default_world_state() -> dict:
    """Fresh default structure for a missing world-state document."""
    return {
        "relationships": {},
        "quests": {},
        "factions": {},
        "propagation_history": [],
    }


class AffectedEntity(BaseModel):
    """An entity reached during propagation. Never persisted."""
    entity_id: str
    entity_type: EntityType
    relationship_type: str
    propagation_level: int = 1
    update_type: UpdateType
    location_id: str | None = None

    @property
    def key(self) -> str:
        """Identity used by the traversal's visited set."""
        return f"{self.entity_type.value}:{self.entity_id}"


class StateUpdate(CamelModel):
    """One section-level write, addressed by logical document path."""
    file_path: str = Field(alias="filePath")
    section: str
    updates: dict = Field(default_factory=dict)
    timestamp: str | None = None


class AffectedEntitiesResult(BaseModel):
    success: bool
    entities: list[AffectedEntity] = Field(default_factory=list)
    error: str | None = None


class ApplyResult(CamelModel):
    success: bool
    files_updated: int = Field(default=0, alias="filesUpdated")
    error: str | None = None


class PropagationResult(CamelModel):
    success: bool
    updates_applied: list[StateUpdate] = Field(default_factory=list, alias="updatesApplied")
    propagation_depth: int = Field(default=0, alias="propagationDepth")
    affected_count: int = Field(default=0, alias="affectedCount")
    error: str | None = None
