"""
Pytest fixtures for world engine tests.

Provides in-memory stores, a sample event definition and a sample
relationship graph for isolated testing.
"""

import pytest
from pathlib import Path

# Add project root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from kapis_engine.state import (
    EventBus,
    MemoryLocationLoader,
    MemoryScheduleTracker,
    MemoryStateStore,
    MemoryWorldGraphStore,
    reset_event_bus,
)
from kapis_engine.systems import (
    AffectedEntityResolver,
    EventExecutor,
    RelationshipGraphCache,
    UpdateApplier,
    UpdateGenerator,
    WorldStatePropagator,
)


BAROVIA = "village-of-barovia"


class FakeClock:
    """Monotonic clock the tests can move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Each test gets its own global event bus."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def burgomaster_event():
    """Authored definition for the burgomaster's death."""
    return {
        "eventId": "death_of_burgomaster",
        "name": "Death of the Burgomaster",
        "description": "Kolyan Indirovich succumbs to his wounds.",
        "narrativeTemplate": "{{eventName}} at {{location}}.",
        "effects": [
            {"type": "npc_status", "npcId": "kolyan_indirovich", "status": "Dead"},
        ],
    }


@pytest.fixture
def location_loader(burgomaster_event):
    return MemoryLocationLoader({BAROVIA: [burgomaster_event]})


@pytest.fixture
def state_store():
    return MemoryStateStore()


@pytest.fixture
def schedule_tracker():
    return MemoryScheduleTracker()


@pytest.fixture
def world_store():
    """World documents with an empty npcs map."""
    return MemoryWorldGraphStore(world={
        "relationships": {},
        "quests": {},
        "factions": {},
        "npcs": {},
        "propagation_history": [],
    })


@pytest.fixture
def executor(location_loader, state_store, schedule_tracker, world_store, bus):
    return EventExecutor(
        location_loader=location_loader,
        state_store=state_store,
        schedule_tracker=schedule_tracker,
        world_store=world_store,
        bus=bus,
    )


@pytest.fixture
def sample_graph():
    """The burgomaster's family, quest and faction edges."""
    return {
        "relationships": {
            "kolyan_indirovich": {
                "family": [
                    {"npcId": "ireena_kolyana", "type": "daughter", "locationId": BAROVIA},
                    {"npcId": "ismark_kolyanovich", "type": "son", "locationId": BAROVIA},
                ],
                "dependent_quests": [
                    {"questId": "escort_ireena", "trigger": "death"},
                ],
                "factions": [
                    {"factionId": "village_council", "locationId": BAROVIA},
                ],
            },
        },
        "quests": {},
        "factions": {},
        "propagation_history": [],
    }


@pytest.fixture
def graph_store(sample_graph):
    return MemoryWorldGraphStore(world=sample_graph)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def graph_cache(graph_store, clock, bus):
    return RelationshipGraphCache(graph_store, ttl_seconds=300, clock=clock, bus=bus)


@pytest.fixture
def propagator(graph_cache, graph_store, state_store, bus):
    return WorldStatePropagator(
        resolver=AffectedEntityResolver(graph_cache),
        generator=UpdateGenerator(),
        applier=UpdateApplier(graph_store, state_store, bus=bus),
        bus=bus,
    )
