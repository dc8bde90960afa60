"""
Wiring for the file-backed engine.

Builds the stores, executor, graph cache and propagator from an
EngineConfig, with every configured path resolved against one root
directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_CONFIG, EngineConfig
from .state.event_bus import EventBus, get_event_bus
from .state.graph_watcher import GraphWatcher
from .state.store import (
    FileLocationLoader,
    FileStateStore,
    YamlScheduleTracker,
    YamlWorldGraphStore,
)
from .systems.applier import UpdateApplier
from .systems.executor import EventExecutor
from .systems.graph_cache import RelationshipGraphCache
from .systems.propagation import WorldStatePropagator
from .systems.resolver import AffectedEntityResolver
from .systems.updates import UpdateGenerator

logger = logging.getLogger(__name__)


@dataclass
class WorldEngine:
    """Everything a session loop needs to run events and cascades."""
    config: EngineConfig
    root: Path
    world_store: YamlWorldGraphStore
    state_store: FileStateStore
    executor: EventExecutor
    cache: RelationshipGraphCache
    resolver: AffectedEntityResolver
    propagator: WorldStatePropagator
    bus: EventBus

    def watcher(self) -> GraphWatcher:
        """A (not yet started) watcher that keeps the graph cache honest."""
        return GraphWatcher(self.cache, self.world_store.data_dir)


def _resolve(root: Path, value: str) -> Path:
    path = Path(value)
    return path if path.is_absolute() else root / path


def create_engine(
    config: EngineConfig | None = None,
    root: Path | str = ".",
    bus: EventBus | None = None,
) -> WorldEngine:
    """Create a file-backed engine. Missing config keys take their defaults."""
    merged: EngineConfig = DEFAULT_CONFIG.copy()
    merged.update(config or {})
    root = Path(root)
    bus = bus or get_event_bus()

    locations_dir = _resolve(root, merged["locations_dir"])
    world_store = YamlWorldGraphStore(
        data_dir=_resolve(root, merged["data_dir"]),
        npcs_dir=_resolve(root, merged["npcs_dir"]),
    )
    state_store = FileStateStore(locations_dir)

    executor = EventExecutor(
        location_loader=FileLocationLoader(locations_dir),
        state_store=state_store,
        schedule_tracker=YamlScheduleTracker(_resolve(root, merged["calendar_file"])),
        world_store=world_store,
        staged_writes=merged["staged_writes"],
        bus=bus,
    )

    cache = RelationshipGraphCache(world_store, ttl_seconds=merged["cache_ttl_seconds"], bus=bus)
    resolver = AffectedEntityResolver(cache)
    propagator = WorldStatePropagator(
        resolver=resolver,
        generator=UpdateGenerator(),
        applier=UpdateApplier(
            world_store,
            state_store,
            history_limit=merged["history_limit"],
            bus=bus,
        ),
        max_depth=merged["max_propagation_depth"],
        warning_threshold=merged["depth_warning_threshold"],
        max_cascade_levels=merged["max_cascade_levels"],
        bus=bus,
    )

    logger.debug(f"Engine created at {root.resolve()}")
    return WorldEngine(
        config=merged,
        root=root,
        world_store=world_store,
        state_store=state_store,
        executor=executor,
        cache=cache,
        resolver=resolver,
        propagator=propagator,
        bus=bus,
    )
