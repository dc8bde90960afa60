"""
Command-line entry point.

Usage:
    python -m kapis_engine execute death_of_burgomaster village-of-barovia --player-present
    python -m kapis_engine propagate kolyan_indirovich --change-type npc_death
    python -m kapis_engine graph kolyan_indirovich
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import load_config
from .engine import WorldEngine, create_engine
from .state.errors import StoreError
from .state.schema import ChangeType, EdgeBundle

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kapis_engine",
        description="Run campaign events and propagate world-state changes",
    )
    parser.add_argument("--root", default=".", help="Campaign root directory")
    parser.add_argument("--config", help="Path to a JSON config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    execute = sub.add_parser("execute", help="Execute a scheduled event")
    execute.add_argument("event_id")
    execute.add_argument("location_id")
    execute.add_argument(
        "--player-present",
        action="store_true",
        help="Narrate from the player's point of view",
    )

    propagate = sub.add_parser("propagate", help="Propagate a change through the relationship graph")
    propagate.add_argument("entity", help="Entity that changed")
    propagate.add_argument("--change-type", default=ChangeType.NPC_DEATH.value)
    propagate.add_argument("--no-relationships", action="store_true", help="Skip family edges")
    propagate.add_argument("--no-quests", action="store_true", help="Skip dependent quests")
    propagate.add_argument("--no-factions", action="store_true", help="Skip factions")
    propagate.add_argument(
        "--location",
        action="append",
        dest="locations",
        help="Only affect entities at this location (repeatable)",
    )
    propagate.add_argument(
        "--cascade-levels",
        type=int,
        help="Override max_cascade_levels from config",
    )

    graph = sub.add_parser("graph", help="Show the relationship graph")
    graph.add_argument("entity", nargs="?", help="Show one entity's edges")

    return parser


# ─── Commands ───────────────────────────────────────────────


async def run_execute(engine: WorldEngine, args) -> int:
    result = await engine.executor.execute(
        {"eventId": args.event_id, "locationId": args.location_id},
        {"playerPresent": args.player_present},
    )

    if not result.success:
        console.print(f"[red]Event failed ({result.error_type.value}):[/red] {result.error}")
        return 1

    console.print(Panel(result.narrative or "", title=args.event_id, border_style="cyan"))
    table = Table(show_header=True, box=None)
    table.add_column("File", style="dim")
    table.add_column("Change")
    for update in result.state_updates:
        detail = {k: v for k, v in update.items() if k != "file"}
        table.add_row(update.get("file", "?"), str(detail))
    console.print(table)
    console.print(f"[dim]{len(result.effects_applied)} effects in {result.execution_time_ms:.1f}ms[/dim]")
    return 0


async def run_propagate(engine: WorldEngine, args) -> int:
    if args.cascade_levels is not None:
        engine.propagator.max_cascade_levels = max(1, args.cascade_levels)

    result = await engine.propagator.propagate_change({
        "changeType": args.change_type,
        "primaryEntity": args.entity,
        "propagationRules": {
            "affectRelationships": not args.no_relationships,
            "affectQuests": not args.no_quests,
            "affectFactions": not args.no_factions,
            "affectedLocations": args.locations,
        },
    })

    if not result.success:
        console.print(f"[red]Propagation failed:[/red] {result.error}")
        return 1

    table = Table(title=f"{args.change_type}: {args.entity}", show_header=True)
    table.add_column("File", style="dim")
    table.add_column("Section", style="cyan")
    table.add_column("Updates")
    for update in result.updates_applied:
        table.add_row(update.file_path, update.section, str(update.updates))
    console.print(table)
    console.print(
        f"[dim]{result.affected_count} updates, depth {result.propagation_depth}[/dim]"
    )
    return 0


async def run_graph(engine: WorldEngine, args) -> int:
    try:
        graph = await engine.cache.get()
    except StoreError as e:
        console.print(f"[red]Could not load relationship graph:[/red] {e}")
        return 1
    relationships = graph.get("relationships") or {}

    entities = [args.entity] if args.entity else sorted(relationships)
    if args.entity and args.entity not in relationships:
        console.print(f"[yellow]No relationships for {args.entity}[/yellow]")
        return 0

    table = Table(title="Relationship graph", show_header=True)
    table.add_column("Entity", style="cyan")
    table.add_column("Family")
    table.add_column("Quests")
    table.add_column("Factions")
    for entity_id in entities:
        try:
            bundle = EdgeBundle.model_validate(relationships[entity_id] or {})
        except ValidationError as e:
            console.print(f"[red]Malformed relationships for {entity_id}:[/red] {e}")
            return 1
        table.add_row(
            entity_id,
            ", ".join(f"{e.npc_id} ({e.type})" for e in bundle.family),
            ", ".join(e.quest_id for e in bundle.dependent_quests),
            ", ".join(e.faction_id for e in bundle.factions),
        )
    console.print(table)
    return 0


COMMANDS = {
    "execute": run_execute,
    "propagate": run_propagate,
    "graph": run_graph,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
    )

    root = Path(args.root)
    config = load_config(root, args.config)
    engine = create_engine(config, root)

    return asyncio.run(COMMANDS[args.command](engine, args))


if __name__ == "__main__":
    sys.exit(main())
