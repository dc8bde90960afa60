"""
Effect handlers for event execution.

Each effect kind maps to one async handler in EFFECT_HANDLERS. A handler
validates its effect, mutates the staged documents in the transaction it is
given, and returns a state-update descriptor for the execution result.
Handlers never write to storage themselves; the executor decides when the
transaction commits.

New kinds register with the decorator:

    @register_effect("weather_change")
    async def apply_weather_change(effect: dict, ctx: EffectContext) -> dict:
        ...

Unknown kinds, and entries that are not mappings, are skipped with a
warning rather than failing the event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from ..state.documents import (
    QUEST_LEDGER_PATH,
    WORLD_STATE_PATH,
    ResourceKind,
    ResourceRef,
    location_state_path,
    upsert_quest,
)
from ..state.errors import EffectError
from ..state.schema import (
    EffectKind,
    GameState,
    NpcStatusEffect,
    QuestTriggerEffect,
    StateUpdateEffect,
    now_iso,
)
from ..state.transaction import WorldStateTransaction

logger = logging.getLogger(__name__)


@dataclass
class EffectContext:
    """What a handler may touch while applying one effect."""
    transaction: WorldStateTransaction
    location_id: str  # the executing event's location
    game_state: GameState = field(default_factory=GameState)


EffectHandler = Callable[[dict, EffectContext], Awaitable[dict]]

EFFECT_HANDLERS: dict[str, EffectHandler] = {}

_M = TypeVar("_M", bound=BaseModel)


def register_effect(kind: str) -> Callable[[EffectHandler], EffectHandler]:
    """Register a handler for an effect kind, replacing any existing one."""
    def decorator(handler: EffectHandler) -> EffectHandler:
        EFFECT_HANDLERS[kind] = handler
        return handler
    return decorator


def get_effect_handler(kind: str) -> EffectHandler | None:
    return EFFECT_HANDLERS.get(kind)


async def apply_effect(effect: Any, ctx: EffectContext) -> dict | None:
    """
    Apply one effect to the staged documents.

    Returns:
        The state-update descriptor, or None when the kind is unknown (or
        the entry isn't a mapping at all) and the effect was skipped.

    Raises:
        EffectError: the effect is malformed or its documents can't be read
    """
    if not isinstance(effect, dict):
        logger.warning(f"Unknown effect type: {type(effect).__name__} entry - skipping")
        return None

    kind = effect.get("type")
    handler = EFFECT_HANDLERS.get(kind)
    if handler is None:
        logger.warning(f"Unknown effect type: {kind} - skipping")
        return None

    try:
        return await handler(effect, ctx)
    except EffectError:
        raise
    except Exception as e:
        raise EffectError(kind, str(e)) from e


def _parse(model: type[_M], effect: dict, requirement: str) -> _M:
    try:
        return model.model_validate(effect)
    except ValidationError as e:
        raise EffectError(effect.get("type", "unknown"), requirement) from e


# ─── Built-in kinds ─────────────────────────────────────────


@register_effect(EffectKind.NPC_STATUS.value)
async def apply_npc_status(effect: dict, ctx: EffectContext) -> dict:
    """Upsert npcs.<id>.status and last_updated in the world-state document."""
    parsed = _parse(NpcStatusEffect, effect, "npc_status effect requires npcId and status fields")

    world = await ctx.transaction.world()
    npcs = world.get("npcs")
    if not isinstance(npcs, dict):
        npcs = {}
        world["npcs"] = npcs
    entry = npcs.setdefault(parsed.npc_id, {})
    entry["status"] = parsed.status
    entry["last_updated"] = now_iso()

    ctx.transaction.mark_dirty(ResourceRef(ResourceKind.WORLD_STATE, WORLD_STATE_PATH))
    return {
        "file": WORLD_STATE_PATH,
        "section": f"npcs.{parsed.npc_id}",
        "change": f"status: {parsed.status}",
    }


@register_effect(EffectKind.STATE_UPDATE.value)
async def apply_state_update(effect: dict, ctx: EffectContext) -> dict:
    """Shallow-merge stateChanges over a location's custom state."""
    parsed = _parse(StateUpdateEffect, effect, "state_update effect requires stateChanges object")
    location_id = parsed.location_id or ctx.location_id

    try:
        custom = await ctx.transaction.custom_state(location_id)
    except Exception as e:
        raise EffectError(parsed.type, f"Failed to get location state: {e}") from e

    custom.update(parsed.state_changes)
    ctx.transaction.mark_dirty(ResourceRef(ResourceKind.LOCATION_STATE, location_id))
    return {
        "file": location_state_path(location_id),
        "flags": list(parsed.state_changes),
        "changes": dict(parsed.state_changes),
    }


@register_effect(EffectKind.QUEST_TRIGGER.value)
async def apply_quest_trigger(effect: dict, ctx: EffectContext) -> dict:
    """Set a quest's status in the ledger, stamping activation or update time."""
    parsed = _parse(QuestTriggerEffect, effect, "quest_trigger effect requires questId and newStatus fields")

    ledger = await ctx.transaction.quest_ledger()
    created = upsert_quest(ledger, parsed.quest_id, {"status": parsed.new_status})
    stamp = "activated_at" if created else "updated_at"
    upsert_quest(ledger, parsed.quest_id, {stamp: now_iso()})

    ctx.transaction.mark_dirty(ResourceRef(ResourceKind.QUEST_LEDGER, QUEST_LEDGER_PATH))
    return {
        "file": QUEST_LEDGER_PATH,
        "quest": parsed.quest_id,
        "status": parsed.new_status,
    }
