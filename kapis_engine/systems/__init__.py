"""
Engine systems.

The executor applies authored events; the propagator cascades the resulting
world changes through the relationship graph. Both take their stores from
kapis_engine.state and never touch files directly.
"""

from .effects import EFFECT_HANDLERS, EffectContext, apply_effect, get_effect_handler, register_effect
from .narrative import generate_event_narrative
from .executor import EventExecutor, create_event_executor
from .graph_cache import RelationshipGraphCache
from .resolver import AffectedEntityResolver, expand_edges, filter_by_location
from .updates import EMOTIONAL_RESPONSES, UpdateGenerator, emotional_response, generate_state_update
from .applier import UpdateApplier
from .propagation import (
    DEPTH_WARNING_THRESHOLD,
    MAX_PROPAGATION_DEPTH,
    WorldStatePropagator,
    create_world_state_propagator,
)

__all__ = [
    # Event execution
    "EFFECT_HANDLERS",
    "EffectContext",
    "apply_effect",
    "get_effect_handler",
    "register_effect",
    "generate_event_narrative",
    "EventExecutor",
    "create_event_executor",
    # Propagation
    "RelationshipGraphCache",
    "AffectedEntityResolver",
    "expand_edges",
    "filter_by_location",
    "EMOTIONAL_RESPONSES",
    "UpdateGenerator",
    "emotional_response",
    "generate_state_update",
    "UpdateApplier",
    "DEPTH_WARNING_THRESHOLD",
    "MAX_PROPAGATION_DEPTH",
    "WorldStatePropagator",
    "create_world_state_propagator",
]
