"""
Event execution and world-state propagation for a tabletop campaign.

Typical use:

    from kapis_engine import create_engine

    engine = create_engine(root="campaign")
    result = await engine.executor.execute(
        {"eventId": "death_of_burgomaster", "locationId": "village-of-barovia"},
        {"playerPresent": True},
    )
    await engine.propagator.propagate_change({
        "changeType": "npc_death",
        "primaryEntity": "kolyan_indirovich",
    })
"""

from .config import DEFAULT_CONFIG, EngineConfig, load_config, save_config
from .engine import WorldEngine, create_engine

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_CONFIG",
    "EngineConfig",
    "load_config",
    "save_config",
    "WorldEngine",
    "create_engine",
]
