"""
Applies batches of state updates produced by propagation.

Updates are grouped by document and staged into one WorldStateTransaction,
so each document is written once, in the order its path was first seen.
An update addressing an unknown path fails the batch before anything is
written. A write failure part-way through the commit leaves earlier
documents written; the result says rollback is required.
"""

from __future__ import annotations

import logging

from ..state.errors import CommitError, EngineError
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import ApplyResult, StateUpdate, now_iso
from ..state.store import StateStore, WorldGraphStore
from ..state.transaction import WorldStateTransaction

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


def group_by_path(updates: list[StateUpdate]) -> dict[str, list[StateUpdate]]:
    """Group updates by file path, keeping first-seen order of paths."""
    groups: dict[str, list[StateUpdate]] = {}
    for update in updates:
        groups.setdefault(update.file_path, []).append(update)
    return groups


class UpdateApplier:
    """Stages and commits propagation updates, then records history."""

    def __init__(
        self,
        world_store: WorldGraphStore,
        state_store: StateStore | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        bus: EventBus | None = None,
    ):
        self.world_store = world_store
        self.state_store = state_store
        self.history_limit = history_limit
        self._bus = bus or get_event_bus()

    async def apply_updates(self, updates: list[StateUpdate]) -> ApplyResult:
        """
        Write a batch of updates.

        Returns:
            ApplyResult with files_updated set to the number of documents
            written. Never raises.
        """
        if not updates:
            return ApplyResult(success=True, files_updated=0)

        groups = group_by_path(updates)
        transaction = WorldStateTransaction(self.world_store, self.state_store)

        try:
            for batch in groups.values():
                for update in batch:
                    await transaction.stage(update)
        except EngineError as e:
            logger.error(f"Update batch rejected before writing: {e}")
            return ApplyResult(success=False, error=f"Update failed: {e}")
        except Exception as e:
            logger.error(f"Could not stage updates: {e}")
            return ApplyResult(success=False, error=f"Update failed: {e}")

        try:
            written = await transaction.commit()
        except CommitError as e:
            return ApplyResult(
                success=False,
                error=f"Update failed with rollback required: {e}",
            )

        await self._record_history(updates, written)

        logger.info(f"Applied {len(updates)} updates to {len(written)} documents")
        self._bus.emit(EventType.UPDATES_APPLIED, files=written, updates=len(updates))
        return ApplyResult(success=True, files_updated=len(written))

    async def _record_history(self, updates: list[StateUpdate], written: list[str]) -> None:
        """Append a propagation_history entry. Failures are logged only."""
        entry = {
            "timestamp": now_iso(),
            "updates": len(updates),
            "files": list(written),
            "sections": [f"{u.file_path}:{u.section}" for u in updates],
        }
        try:
            world = await self.world_store.read()
            history = world.get("propagation_history")
            if not isinstance(history, list):
                history = []
            history.append(entry)
            if self.history_limit > 0:
                history = history[-self.history_limit:]
            world["propagation_history"] = history
            await self.world_store.write(world)
        except Exception as e:
            logger.warning(f"Failed to record propagation history: {e}")
