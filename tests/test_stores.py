"""Tests for file-backed and in-memory stores."""

import asyncio
from pathlib import Path

import pytest
import yaml

from kapis_engine.state import (
    EventDefinitionError,
    EventStatus,
    FileLocationLoader,
    FileStateStore,
    MemoryWorldGraphStore,
    StoreError,
    YamlScheduleTracker,
    YamlWorldGraphStore,
    default_world_state,
)
from kapis_engine.state.documents import (
    classify_path,
    merge_section,
    parse_frontmatter,
    upsert_quest,
    ResourceKind,
)


EVENTS_MD = """# Events

Things that happen in the village.

### Events
```yaml
events:
  - eventId: death_of_burgomaster
    name: Death of the Burgomaster
    effects:
      - type: npc_status
        npcId: kolyan_indirovich
        status: Dead
  - eventId: bells_toll
    description: The church bells ring.
```
"""


def _write_location(root: Path, location_id: str, events: str | None = None) -> Path:
    location_dir = root / location_id
    location_dir.mkdir(parents=True)
    if events is not None:
        (location_dir / "Events.md").write_text(events, encoding="utf-8")
    return location_dir


class TestFileLocationLoader:
    """Test Events.md parsing."""

    def test_loads_definition(self, tmp_path):
        _write_location(tmp_path, "village-of-barovia", EVENTS_MD)
        loader = FileLocationLoader(tmp_path)

        definition = asyncio.run(loader.load_event_definition("death_of_burgomaster", "village-of-barovia"))

        assert definition.event_id == "death_of_burgomaster"
        assert definition.name == "Death of the Burgomaster"
        assert definition.effects[0]["npcId"] == "kolyan_indirovich"

    def test_name_defaults_to_id(self, tmp_path):
        _write_location(tmp_path, "village-of-barovia", EVENTS_MD)
        loader = FileLocationLoader(tmp_path)
        definition = asyncio.run(loader.load_event_definition("bells_toll", "village-of-barovia"))
        assert definition.name == "bells_toll"
        assert definition.effects == []

    def test_missing_events_file(self, tmp_path):
        _write_location(tmp_path, "krezk")
        loader = FileLocationLoader(tmp_path)
        with pytest.raises(EventDefinitionError) as exc:
            asyncio.run(loader.load_event_definition("x", "krezk"))
        assert "Events.md not found" in exc.value.reason

    def test_missing_events_block(self, tmp_path):
        _write_location(tmp_path, "krezk", "# Events\n\nNothing here yet.\n")
        loader = FileLocationLoader(tmp_path)
        with pytest.raises(EventDefinitionError) as exc:
            asyncio.run(loader.load_event_definition("x", "krezk"))
        assert "No Events YAML block" in exc.value.reason

    def test_event_not_found(self, tmp_path):
        _write_location(tmp_path, "village-of-barovia", EVENTS_MD)
        loader = FileLocationLoader(tmp_path)
        with pytest.raises(EventDefinitionError) as exc:
            asyncio.run(loader.load_event_definition("no_such_event", "village-of-barovia"))
        assert exc.value.reason == "Event not found: no_such_event"

    def test_rejects_traversal(self, tmp_path):
        loader = FileLocationLoader(tmp_path)
        with pytest.raises(EventDefinitionError):
            asyncio.run(loader.load_event_definition("x", "../secrets"))


class TestFileStateStore:
    """Test State.md frontmatter persistence."""

    def test_missing_state_is_default(self, tmp_path):
        _write_location(tmp_path, "vallaki")
        store = FileStateStore(tmp_path)
        state = asyncio.run(store.get_state("vallaki"))
        assert state.visited is False
        assert state.custom_state == {}

    def test_update_creates_state_file(self, tmp_path):
        location_dir = _write_location(tmp_path, "vallaki")
        store = FileStateStore(tmp_path)

        asyncio.run(store.update_custom_state("vallaki", {"festival": "cancelled"}))

        data, body = parse_frontmatter((location_dir / "State.md").read_text(encoding="utf-8"))
        assert data["custom_state"] == {"festival": "cancelled"}
        assert data["last_updated"] is not None
        assert "This location has been visited." in body

    def test_update_preserves_body_and_fields(self, tmp_path):
        location_dir = _write_location(tmp_path, "vallaki")
        (location_dir / "State.md").write_text(
            "---\nvisited: true\ndiscovered_items:\n- icon\ncustom_state:\n  old: 1\n---\n# Vallaki\n\nNotes.\n",
            encoding="utf-8",
        )
        store = FileStateStore(tmp_path)

        asyncio.run(store.update_custom_state("vallaki", {"festival": "cancelled"}))
        state = asyncio.run(store.get_state("vallaki"))

        assert state.visited is True
        assert state.discovered_items == ["icon"]
        assert state.custom_state == {"festival": "cancelled"}
        assert (location_dir / "State.md").read_text(encoding="utf-8").endswith("# Vallaki\n\nNotes.\n")

    def test_update_requires_location_dir(self, tmp_path):
        store = FileStateStore(tmp_path)
        with pytest.raises(StoreError):
            asyncio.run(store.update_custom_state("nowhere", {"a": 1}))

    def test_rejects_traversal(self, tmp_path):
        store = FileStateStore(tmp_path)
        with pytest.raises(StoreError):
            asyncio.run(store.get_state("../../etc"))


class TestYamlScheduleTracker:
    """Test calendar status updates."""

    def test_updates_status(self, tmp_path):
        calendar = tmp_path / "calendar.yaml"
        calendar.write_text(yaml.safe_dump({
            "current": {"date": "735-10-3"},
            "events": [{"eventId": "death_of_burgomaster", "status": "pending"}],
        }), encoding="utf-8")
        tracker = YamlScheduleTracker(calendar)

        asyncio.run(tracker.update_event_status("death_of_burgomaster", EventStatus.COMPLETED))

        data = yaml.safe_load(calendar.read_text(encoding="utf-8"))
        assert data["events"][0]["status"] == "completed"
        assert data["current"] == {"date": "735-10-3"}

    def test_unknown_event(self, tmp_path):
        calendar = tmp_path / "calendar.yaml"
        calendar.write_text("events: []\n", encoding="utf-8")
        tracker = YamlScheduleTracker(calendar)
        with pytest.raises(StoreError):
            asyncio.run(tracker.update_event_status("nope", "failed"))

    def test_missing_calendar(self, tmp_path):
        tracker = YamlScheduleTracker(tmp_path / "calendar.yaml")
        with pytest.raises(StoreError):
            asyncio.run(tracker.update_event_status("x", "failed"))


class TestYamlWorldGraphStore:
    """Test world documents on disk."""

    def test_bootstrap_creates_default(self, tmp_path):
        store = YamlWorldGraphStore(tmp_path / "data")

        graph = asyncio.run(store.read())

        assert graph == default_world_state()
        assert store.world_state_path.exists()

    def test_read_without_create_leaves_disk_alone(self, tmp_path):
        store = YamlWorldGraphStore(tmp_path / "data")

        graph = asyncio.run(store.read(create=False))

        assert graph == default_world_state()
        assert not store.world_state_path.exists()

    def test_bootstrap_idempotent(self, tmp_path):
        store = YamlWorldGraphStore(tmp_path / "data")
        first = asyncio.run(store.read())
        second = asyncio.run(store.read())
        assert first == second == {
            "relationships": {},
            "quests": {},
            "factions": {},
            "propagation_history": [],
        }

    def test_write_then_read(self, tmp_path):
        store = YamlWorldGraphStore(tmp_path)
        asyncio.run(store.write({"relationships": {"a": {"family": []}}, "factions": {}}))
        assert asyncio.run(store.read())["relationships"] == {"a": {"family": []}}

    def test_corrupt_document(self, tmp_path):
        (tmp_path / "world-state.yaml").write_text("- just\n- a list\n", encoding="utf-8")
        store = YamlWorldGraphStore(tmp_path)
        with pytest.raises(StoreError):
            asyncio.run(store.read())

    def test_missing_quest_ledger_is_empty(self, tmp_path):
        store = YamlWorldGraphStore(tmp_path)
        assert asyncio.run(store.read_quest_ledger()) == {"quests": []}

    def test_npc_document_keeps_body(self, tmp_path):
        npcs = tmp_path / "NPCs"
        npcs.mkdir()
        (npcs / "ireena_kolyana.md").write_text("---\nname: Ireena\n---\n# Ireena\n\nBio.\n", encoding="utf-8")
        store = YamlWorldGraphStore(tmp_path, npcs_dir=npcs)

        doc = asyncio.run(store.read_npc("ireena_kolyana"))
        doc["emotional_state"] = {"emotionalState": "Grieving"}
        asyncio.run(store.write_npc("ireena_kolyana", doc))

        content = (npcs / "ireena_kolyana.md").read_text(encoding="utf-8")
        data, body = parse_frontmatter(content)
        assert data["name"] == "Ireena"
        assert data["emotional_state"] == {"emotionalState": "Grieving"}
        assert body == "# Ireena\n\nBio.\n"

    def test_missing_npc_is_empty(self, tmp_path):
        store = YamlWorldGraphStore(tmp_path)
        assert asyncio.run(store.read_npc("nobody")) == {}

    def test_npc_rejects_traversal(self, tmp_path):
        store = YamlWorldGraphStore(tmp_path)
        with pytest.raises(StoreError):
            asyncio.run(store.read_npc("../world-state"))


class TestMemoryWorldGraphStore:
    def test_bootstrap(self):
        store = MemoryWorldGraphStore()
        assert asyncio.run(store.read()) == default_world_state()
        assert store.read_count == 1

    def test_read_without_create(self):
        store = MemoryWorldGraphStore()
        assert asyncio.run(store.read(create=False)) == default_world_state()
        assert store.world is None

    def test_reads_are_copies(self):
        store = MemoryWorldGraphStore(world={"npcs": {}})
        graph = asyncio.run(store.read())
        graph["npcs"]["x"] = {}
        assert store.world == {"npcs": {}}


class TestDocuments:
    """Test document helpers."""

    def test_classify_paths(self):
        assert classify_path("npcs/ireena.md").kind == ResourceKind.NPC_DOCUMENT
        assert classify_path("game-data/NPCs/ireena.md").key == "ireena"
        assert classify_path("vallaki/State.md").key == "vallaki"
        assert classify_path("world-state.yaml").kind == ResourceKind.WORLD_STATE
        assert classify_path("data/active-quests.yaml").kind == ResourceKind.QUEST_LEDGER
        assert classify_path("notes/todo.txt") is None

    def test_merge_section_creates_path(self):
        doc = {"factions": "oops"}
        merge_section(doc, "factions.village_council", {"changeType": "npc_death"})
        assert doc == {"factions": {"village_council": {"changeType": "npc_death"}}}

    def test_upsert_quest(self):
        ledger = {}
        assert upsert_quest(ledger, "escort_ireena", {"status": "Active"}) is True
        assert upsert_quest(ledger, "escort_ireena", {"status": "Done"}) is False
        assert ledger == {"quests": [{"questId": "escort_ireena", "status": "Done"}]}

    def test_frontmatter_without_block(self):
        assert parse_frontmatter("# Just a body\n") == ({}, "# Just a body\n")


class TestProtocols:
    """Every implementation satisfies its protocol."""

    def test_implementations(self, tmp_path):
        from kapis_engine.state import (
            LocationDataLoader,
            MemoryLocationLoader,
            MemoryScheduleTracker,
            MemoryStateStore,
            ScheduleTracker,
            StateStore,
            WorldGraphStore,
        )

        assert isinstance(FileLocationLoader(tmp_path), LocationDataLoader)
        assert isinstance(MemoryLocationLoader(), LocationDataLoader)
        assert isinstance(FileStateStore(tmp_path), StateStore)
        assert isinstance(MemoryStateStore(), StateStore)
        assert isinstance(YamlScheduleTracker(tmp_path / "calendar.yaml"), ScheduleTracker)
        assert isinstance(MemoryScheduleTracker(), ScheduleTracker)
        assert isinstance(YamlWorldGraphStore(tmp_path), WorldGraphStore)
        assert isinstance(MemoryWorldGraphStore(), WorldGraphStore)
