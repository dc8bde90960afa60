"""World state models, documents and storage."""

from .schema import (
    AffectedEntity,
    AffectedEntitiesResult,
    ApplyResult,
    ChangeType,
    EdgeBundle,
    EffectKind,
    EntityType,
    ErrorType,
    EventDefinition,
    EventStatus,
    ExecutionResult,
    GameState,
    LocationState,
    PropagationResult,
    PropagationRules,
    ScheduledEvent,
    StateChange,
    StateUpdate,
    UpdateType,
    default_world_state,
)
from .errors import (
    CommitError,
    EffectError,
    EngineError,
    EventDefinitionError,
    StoreError,
    UnknownResourceError,
)
from .store import (
    FileLocationLoader,
    FileStateStore,
    LocationDataLoader,
    MemoryLocationLoader,
    MemoryScheduleTracker,
    MemoryStateStore,
    MemoryWorldGraphStore,
    ScheduleTracker,
    StateStore,
    WorldGraphStore,
    YamlScheduleTracker,
    YamlWorldGraphStore,
)
from .transaction import WorldStateTransaction
from .event_bus import (
    EventBus,
    EventType,
    WorldEvent,
    get_event_bus,
    reset_event_bus,
)
from .graph_watcher import GraphWatcher

__all__ = [
    # Schema
    "AffectedEntity",
    "AffectedEntitiesResult",
    "ApplyResult",
    "ChangeType",
    "EdgeBundle",
    "EffectKind",
    "EntityType",
    "ErrorType",
    "EventDefinition",
    "EventStatus",
    "ExecutionResult",
    "GameState",
    "LocationState",
    "PropagationResult",
    "PropagationRules",
    "ScheduledEvent",
    "StateChange",
    "StateUpdate",
    "UpdateType",
    "default_world_state",
    # Errors
    "CommitError",
    "EffectError",
    "EngineError",
    "EventDefinitionError",
    "StoreError",
    "UnknownResourceError",
    # Stores
    "LocationDataLoader",
    "StateStore",
    "ScheduleTracker",
    "WorldGraphStore",
    "FileLocationLoader",
    "FileStateStore",
    "YamlScheduleTracker",
    "YamlWorldGraphStore",
    "MemoryLocationLoader",
    "MemoryStateStore",
    "MemoryScheduleTracker",
    "MemoryWorldGraphStore",
    # Staging
    "WorldStateTransaction",
    # Event Bus
    "EventBus",
    "EventType",
    "WorldEvent",
    "get_event_bus",
    "reset_event_bus",
    # Watcher
    "GraphWatcher",
]
