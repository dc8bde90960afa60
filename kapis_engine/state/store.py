"""
Collaborator storage interfaces and their implementations.

Separates persistence from engine logic for testability. Each protocol has
a file-backed implementation (production) and an in-memory one (testing):

- LocationDataLoader: event definitions from <location>/Events.md
- StateStore: location custom state in <location>/State.md frontmatter
- ScheduleTracker: event lifecycle status in calendar.yaml
- WorldGraphStore: world-state.yaml, active-quests.yaml and NPC documents
"""

import copy
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from .documents import (
    LOCATION_STATE_FILE,
    dump_yaml,
    extract_events_block,
    load_yaml,
    parse_frontmatter,
    render_frontmatter,
)
from .errors import EventDefinitionError, StoreError
from .schema import (
    EventDefinition,
    EventStatus,
    LocationState,
    default_world_state,
    now_iso,
)

logger = logging.getLogger(__name__)

EVENTS_FILE = "Events.md"
DEFAULT_STATE_BODY = "# Location State\n\nThis location has been visited.\n"


@runtime_checkable
class LocationDataLoader(Protocol):
    """Loads authored event definitions."""

    async def load_event_definition(self, event_id: str, location_id: str) -> EventDefinition:
        """Return the definition, or raise EventDefinitionError."""
        ...


@runtime_checkable
class StateStore(Protocol):
    """Reads and writes a location's persisted state."""

    async def get_state(self, location_id: str) -> LocationState:
        ...

    async def update_custom_state(self, location_id: str, custom_state: dict) -> None:
        """Replace the location's custom state. Raises StoreError on failure."""
        ...


@runtime_checkable
class ScheduleTracker(Protocol):
    """Tracks the lifecycle status of scheduled events."""

    async def update_event_status(self, event_id: str, status: EventStatus) -> None:
        ...


@runtime_checkable
class WorldGraphStore(Protocol):
    """
    Persists the world-state document (which holds the relationship graph),
    the quest ledger and per-NPC documents.
    """

    async def read(self, create: bool = True) -> dict:
        """
        Load the world-state document.

        If it is absent the default document is returned, and also saved
        when create is true.
        """
        ...

    async def write(self, graph: dict) -> None:
        ...

    async def read_quest_ledger(self) -> dict:
        ...

    async def write_quest_ledger(self, ledger: dict) -> None:
        ...

    async def read_npc(self, npc_id: str) -> dict:
        """Load an NPC document's frontmatter; empty dict if none exists."""
        ...

    async def write_npc(self, npc_id: str, doc: dict) -> None:
        ...


def _check_id(value: str, what: str) -> str:
    """Reject ids that would escape their directory."""
    if not value or not isinstance(value, str):
        raise StoreError(f"{what} must be a non-empty string")
    if ".." in value.replace("\\", "/").split("/") or Path(value).is_absolute():
        raise StoreError(f"Invalid {what}: {value}")
    return value


def definition_from_raw(raw: dict, event_id: str, location_id: str) -> EventDefinition:
    """Build an EventDefinition from an authored mapping, filling defaults."""
    try:
        return EventDefinition(
            event_id=raw.get("eventId") or event_id,
            name=raw.get("name") or event_id,
            description=raw.get("description") or "",
            effects=raw.get("effects") or [],
            narrative_template=raw.get("narrativeTemplate") or None,
        )
    except ValidationError as e:
        raise EventDefinitionError(
            event_id, location_id, f"Malformed event definition {event_id}: {e}",
        ) from e


# -----------------------------------------------------------------------------
# File-backed implementations
# -----------------------------------------------------------------------------

class FileLocationLoader:
    """
    Reads event definitions from <locations_dir>/<location>/Events.md.

    The document holds a `### Events` heading followed by a fenced yaml block:

        ### Events
        ```yaml
        events:
          - eventId: death_of_burgomaster
            effects: [...]
        ```
    """

    def __init__(self, locations_dir: Path | str = "game-data/locations"):
        self.locations_dir = Path(locations_dir)

    async def load_event_definition(self, event_id: str, location_id: str) -> EventDefinition:
        if not event_id or not isinstance(event_id, str):
            raise EventDefinitionError(event_id, location_id, "eventId must be a non-empty string")
        try:
            _check_id(location_id, "locationId")
        except StoreError as e:
            raise EventDefinitionError(event_id, location_id, str(e)) from e

        events_path = self.locations_dir / location_id / EVENTS_FILE
        if not events_path.exists():
            raise EventDefinitionError(
                event_id, location_id, f"Events.md not found for location: {location_id}",
            )

        try:
            data = extract_events_block(events_path.read_text(encoding="utf-8"))
        except LookupError as e:
            raise EventDefinitionError(
                event_id, location_id, f"No Events YAML block found in {location_id}/Events.md",
            ) from e
        except (ValueError, yaml.YAMLError) as e:
            raise EventDefinitionError(
                event_id, location_id, f"Failed to parse Events YAML: {e}",
            ) from e

        for raw in data["events"]:
            if isinstance(raw, dict) and raw.get("eventId") == event_id:
                return definition_from_raw(raw, event_id, location_id)

        raise EventDefinitionError(event_id, location_id, f"Event not found: {event_id}")


class FileStateStore:
    """
    Location state stored as YAML frontmatter in <location>/State.md.

    The narrative body below the frontmatter is preserved on every write.
    Writes require the location directory to exist already.
    """

    def __init__(self, locations_dir: Path | str = "game-data/locations"):
        self.locations_dir = Path(locations_dir)

    def _state_path(self, location_id: str) -> Path:
        return self.locations_dir / _check_id(location_id, "locationId") / LOCATION_STATE_FILE

    def _read(self, path: Path) -> tuple[LocationState, str | None]:
        if not path.exists():
            return LocationState(), None

        content = path.read_text(encoding="utf-8")
        try:
            data, body = parse_frontmatter(content)
            return LocationState.model_validate(data), body
        except (ValueError, yaml.YAMLError, ValidationError) as e:
            logger.warning(f"Failed to parse frontmatter in {path}: {e}")
            return LocationState(), content

    async def get_state(self, location_id: str) -> LocationState:
        state, _ = self._read(self._state_path(location_id))
        return state

    async def update_custom_state(self, location_id: str, custom_state: dict) -> None:
        path = self._state_path(location_id)
        if not path.parent.is_dir():
            raise StoreError(f"Location directory not found: {location_id}")

        state, body = self._read(path)
        state.custom_state = dict(custom_state)
        state.last_updated = now_iso()

        try:
            path.write_text(
                render_frontmatter(state.model_dump(), body if body is not None else DEFAULT_STATE_BODY),
                encoding="utf-8",
            )
        except OSError as e:
            raise StoreError(f"Failed to update state for {location_id}: {e}") from e


class YamlScheduleTracker:
    """Event statuses in a calendar.yaml `events` list."""

    def __init__(self, calendar_path: Path | str = "data/calendar.yaml"):
        self.calendar_path = Path(calendar_path)

    async def update_event_status(self, event_id: str, status: EventStatus) -> None:
        status = EventStatus(status)
        if not self.calendar_path.exists():
            raise StoreError(f"Calendar not found: {self.calendar_path}")

        try:
            calendar = load_yaml(self.calendar_path.read_text(encoding="utf-8"))
        except (ValueError, yaml.YAMLError) as e:
            raise StoreError(f"Failed to parse calendar: {e}") from e

        events = calendar.get("events")
        if not isinstance(events, list):
            raise StoreError("Calendar missing events array")

        for event in events:
            if isinstance(event, dict) and event.get("eventId") == event_id:
                event["status"] = status.value
                break
        else:
            raise StoreError(f'Event with eventId "{event_id}" not found')

        self.calendar_path.write_text(dump_yaml(calendar), encoding="utf-8")


class YamlWorldGraphStore:
    """
    World documents under a data directory.

    Layout:
        <data_dir>/world-state.yaml
        <data_dir>/active-quests.yaml
        <npcs_dir>/<npc_id>.md   (frontmatter)
    """

    WORLD_STATE_FILE = "world-state.yaml"
    QUEST_LEDGER_FILE = "active-quests.yaml"

    def __init__(self, data_dir: Path | str = "data", npcs_dir: Path | str | None = None):
        self.data_dir = Path(data_dir)
        self.npcs_dir = Path(npcs_dir) if npcs_dir is not None else self.data_dir / "NPCs"

    @property
    def world_state_path(self) -> Path:
        return self.data_dir / self.WORLD_STATE_FILE

    @property
    def quest_ledger_path(self) -> Path:
        return self.data_dir / self.QUEST_LEDGER_FILE

    def _load(self, path: Path) -> dict:
        try:
            return load_yaml(path.read_text(encoding="utf-8"))
        except (ValueError, yaml.YAMLError) as e:
            raise StoreError(f"Failed to parse {path.name}: {e}") from e

    def _dump(self, path: Path, data: dict) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(dump_yaml(data), encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Failed to write {path.name}: {e}") from e

    async def read(self, create: bool = True) -> dict:
        if not self.world_state_path.exists():
            graph = default_world_state()
            if not create:
                return graph
            self._dump(self.world_state_path, graph)
            logger.info(f"Created default world state at {self.world_state_path}")
            return graph
        return self._load(self.world_state_path)

    async def write(self, graph: dict) -> None:
        self._dump(self.world_state_path, graph)

    async def read_quest_ledger(self) -> dict:
        if not self.quest_ledger_path.exists():
            return {"quests": []}
        return self._load(self.quest_ledger_path)

    async def write_quest_ledger(self, ledger: dict) -> None:
        self._dump(self.quest_ledger_path, ledger)

    def _npc_path(self, npc_id: str) -> Path:
        return self.npcs_dir / f"{_check_id(npc_id, 'npcId')}.md"

    async def read_npc(self, npc_id: str) -> dict:
        path = self._npc_path(npc_id)
        if not path.exists():
            return {}
        try:
            data, _ = parse_frontmatter(path.read_text(encoding="utf-8"))
        except (ValueError, yaml.YAMLError) as e:
            raise StoreError(f"Failed to parse NPC document {npc_id}: {e}") from e
        return data

    async def write_npc(self, npc_id: str, doc: dict) -> None:
        path = self._npc_path(npc_id)
        body = f"# {npc_id}\n"
        if path.exists():
            _, body = parse_frontmatter(path.read_text(encoding="utf-8"))
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(render_frontmatter(doc, body), encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Failed to write NPC document {npc_id}: {e}") from e


# -----------------------------------------------------------------------------
# In-memory implementations (testing)
# -----------------------------------------------------------------------------

class MemoryLocationLoader:
    """Event definitions held in memory, keyed by location."""

    def __init__(self, events: dict[str, list[dict]] | None = None):
        self.events: dict[str, list[dict]] = {k: list(v) for k, v in (events or {}).items()}

    def add(self, location_id: str, raw: dict) -> None:
        self.events.setdefault(location_id, []).append(raw)

    async def load_event_definition(self, event_id: str, location_id: str) -> EventDefinition:
        if location_id not in self.events:
            raise EventDefinitionError(
                event_id, location_id, f"Events.md not found for location: {location_id}",
            )
        for raw in self.events[location_id]:
            if raw.get("eventId") == event_id:
                return definition_from_raw(raw, event_id, location_id)
        raise EventDefinitionError(event_id, location_id, f"Event not found: {event_id}")


class MemoryStateStore:
    """Location states in memory. Unknown locations start from defaults."""

    def __init__(self, states: dict[str, LocationState] | None = None):
        self.states: dict[str, LocationState] = dict(states or {})
        self.writes: list[tuple[str, dict]] = []

    async def get_state(self, location_id: str) -> LocationState:
        state = self.states.get(location_id)
        return state.model_copy(deep=True) if state else LocationState()

    async def update_custom_state(self, location_id: str, custom_state: dict) -> None:
        state = self.states.get(location_id) or LocationState()
        state.custom_state = copy.deepcopy(custom_state)
        state.last_updated = now_iso()
        self.states[location_id] = state
        self.writes.append((location_id, copy.deepcopy(custom_state)))


class MemoryScheduleTracker:
    """Records every status transition in order."""

    def __init__(self):
        self.statuses: dict[str, EventStatus] = {}
        self.history: list[tuple[str, EventStatus]] = []

    async def update_event_status(self, event_id: str, status: EventStatus) -> None:
        status = EventStatus(status)
        self.statuses[event_id] = status
        self.history.append((event_id, status))


class MemoryWorldGraphStore:
    """
    World documents in memory.

    Reads and writes deep-copy so callers can't mutate stored state by
    accident. read_count lets tests observe cache behavior.
    """

    def __init__(
        self,
        world: dict | None = None,
        quest_ledger: dict | None = None,
        npcs: dict[str, dict] | None = None,
    ):
        self.world: dict | None = copy.deepcopy(world)
        self.quest_ledger: dict = copy.deepcopy(quest_ledger) if quest_ledger else {"quests": []}
        self.npcs: dict[str, dict] = copy.deepcopy(npcs or {})
        self.read_count = 0
        self.written: list[str] = []

    async def read(self, create: bool = True) -> dict:
        self.read_count += 1
        if self.world is None:
            if not create:
                return default_world_state()
            self.world = default_world_state()
        return copy.deepcopy(self.world)

    async def write(self, graph: dict) -> None:
        self.world = copy.deepcopy(graph)
        self.written.append("world-state.yaml")

    async def read_quest_ledger(self) -> dict:
        return copy.deepcopy(self.quest_ledger)

    async def write_quest_ledger(self, ledger: dict) -> None:
        self.quest_ledger = copy.deepcopy(ledger)
        self.written.append("active-quests.yaml")

    async def read_npc(self, npc_id: str) -> dict:
        return copy.deepcopy(self.npcs.get(npc_id, {}))

    async def write_npc(self, npc_id: str, doc: dict) -> None:
        self.npcs[npc_id] = copy.deepcopy(doc)
        self.written.append(f"npcs/{npc_id}.md")
