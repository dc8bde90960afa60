"""Tests for the command-line entry point."""

import yaml

from kapis_engine.__main__ import build_parser, main


EVENTS_MD = """### Events
```yaml
events:
  - eventId: death_of_burgomaster
    effects:
      - type: npc_status
        npcId: kolyan_indirovich
        status: Dead
```
"""


def _campaign(root):
    location = root / "game-data" / "locations" / "village-of-barovia"
    location.mkdir(parents=True)
    (location / "Events.md").write_text(EVENTS_MD, encoding="utf-8")
    data = root / "data"
    data.mkdir()
    (data / "calendar.yaml").write_text("events:\n- eventId: death_of_burgomaster\n  status: triggered\n", encoding="utf-8")
    (data / "world-state.yaml").write_text(yaml.safe_dump({
        "relationships": {
            "kolyan_indirovich": {
                "family": [{"npcId": "ireena_kolyana", "type": "daughter", "locationId": "village-of-barovia"}],
                "factions": [{"factionId": "village_council"}],
            },
        },
    }), encoding="utf-8")


class TestParser:
    def test_propagate_flags(self):
        args = build_parser().parse_args([
            "propagate", "kolyan_indirovich", "--no-quests",
            "--location", "vallaki", "--location", "krezk", "--cascade-levels", "2",
        ])
        assert args.command == "propagate"
        assert args.no_quests is True
        assert args.no_factions is False
        assert args.locations == ["vallaki", "krezk"]
        assert args.cascade_levels == 2
        assert args.change_type == "npc_death"

    def test_execute_args(self):
        args = build_parser().parse_args(["--root", "/tmp/c", "execute", "e", "loc", "--player-present"])
        assert args.root == "/tmp/c"
        assert (args.event_id, args.location_id, args.player_present) == ("e", "loc", True)


class TestCommands:
    def test_execute_success(self, tmp_path):
        _campaign(tmp_path)
        assert main(["--root", str(tmp_path), "execute", "death_of_burgomaster", "village-of-barovia"]) == 0

    def test_execute_failure_exit_code(self, tmp_path):
        _campaign(tmp_path)
        assert main(["--root", str(tmp_path), "execute", "no_such_event", "village-of-barovia"]) == 1

    def test_propagate(self, tmp_path):
        _campaign(tmp_path)
        code = main(["--root", str(tmp_path), "propagate", "kolyan_indirovich", "--no-factions"])
        assert code == 0
        assert (tmp_path / "game-data" / "NPCs" / "ireena_kolyana.md").exists()

    def test_propagate_location_filter(self, tmp_path):
        _campaign(tmp_path)
        code = main(["--root", str(tmp_path), "propagate", "kolyan_indirovich", "--location", "vallaki"])
        assert code == 0
        # The daughter lives elsewhere; only the unplaced faction is updated
        assert not (tmp_path / "game-data" / "NPCs" / "ireena_kolyana.md").exists()
        world = yaml.safe_load((tmp_path / "data" / "world-state.yaml").read_text(encoding="utf-8"))
        assert "village_council" in world["factions"]

    def test_graph(self, tmp_path):
        _campaign(tmp_path)
        assert main(["--root", str(tmp_path), "graph"]) == 0
        assert main(["--root", str(tmp_path), "graph", "strahd"]) == 0

    def test_graph_malformed_bundle(self, tmp_path, capsys):
        _campaign(tmp_path)
        world_file = tmp_path / "data" / "world-state.yaml"
        world = yaml.safe_load(world_file.read_text(encoding="utf-8"))
        world["relationships"]["strahd"] = {"family": [{"type": "rival"}]}
        world_file.write_text(yaml.safe_dump(world), encoding="utf-8")

        assert main(["--root", str(tmp_path), "graph", "strahd"]) == 1
        assert "Malformed relationships for strahd" in capsys.readouterr().out
        assert main(["--root", str(tmp_path), "graph"]) == 1

    def test_graph_corrupt_world_state(self, tmp_path):
        _campaign(tmp_path)
        (tmp_path / "data" / "world-state.yaml").write_text("- not\n- a mapping\n", encoding="utf-8")
        assert main(["--root", str(tmp_path), "graph"]) == 1
