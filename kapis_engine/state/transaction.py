"""
Staged writes over the world documents.

A transaction snapshots each document the first time it is touched, applies
mutations to the snapshot, and writes every dirty document exactly once on
commit(), in the order the documents were first dirtied. Nothing reaches
storage until commit(), so a failure while staging leaves storage untouched.

A failure during commit() is different: documents flushed before the failing
one stay written. CommitError reports which ones.
"""

import logging

from .documents import (
    QUEST_LEDGER_PATH,
    WORLD_STATE_PATH,
    ResourceKind,
    ResourceRef,
    classify_path,
    location_state_path,
    merge_section,
    npc_document_path,
    upsert_quest,
)
from .errors import CommitError, UnknownResourceError
from .schema import StateUpdate
from .store import StateStore, WorldGraphStore

logger = logging.getLogger(__name__)

_ROOT_SECTIONS = ("", "custom_state")


class WorldStateTransaction:
    """In-memory staging area for one execution or propagation batch."""

    def __init__(self, world_store: WorldGraphStore, state_store: StateStore | None = None):
        self._world_store = world_store
        self._state_store = state_store

        self._world: dict | None = None
        self._quests: dict | None = None
        self._locations: dict[str, dict] = {}
        self._npcs: dict[str, dict] = {}

        # label -> ref, insertion-ordered
        self._dirty: dict[str, ResourceRef] = {}

    # ─── Snapshots ───────────────────────────────────────────

    async def world(self) -> dict:
        # No bootstrap write here; the document only reaches disk on commit
        if self._world is None:
            self._world = await self._world_store.read(create=False)
        return self._world

    async def quest_ledger(self) -> dict:
        if self._quests is None:
            self._quests = await self._world_store.read_quest_ledger()
        return self._quests

    async def custom_state(self, location_id: str) -> dict:
        if location_id not in self._locations:
            if self._state_store is None:
                raise RuntimeError("Transaction has no state store for location writes")
            state = await self._state_store.get_state(location_id)
            self._locations[location_id] = dict(state.custom_state)
        return self._locations[location_id]

    async def npc(self, npc_id: str) -> dict:
        if npc_id not in self._npcs:
            self._npcs[npc_id] = await self._world_store.read_npc(npc_id)
        return self._npcs[npc_id]

    # ─── Dirty tracking ──────────────────────────────────────

    def mark_dirty(self, ref: ResourceRef) -> str:
        label = _label(ref)
        self._dirty.setdefault(label, ref)
        return label

    @property
    def pending(self) -> list[str]:
        """Labels of documents that commit() would write."""
        return list(self._dirty)

    # ─── Section updates ─────────────────────────────────────

    async def stage(self, update: StateUpdate) -> str:
        """
        Merge a StateUpdate into its document's snapshot.

        Returns the document label. Raises UnknownResourceError if no writer
        handles the update's path.
        """
        ref = classify_path(update.file_path)
        if ref is None:
            raise UnknownResourceError(update.file_path)

        if ref.kind == ResourceKind.NPC_DOCUMENT:
            merge_section(await self.npc(ref.key), update.section, update.updates)
        elif ref.kind == ResourceKind.LOCATION_STATE:
            custom = await self.custom_state(ref.key)
            if update.section in _ROOT_SECTIONS:
                custom.update(update.updates)
            else:
                merge_section(custom, update.section, update.updates)
        elif ref.kind == ResourceKind.WORLD_STATE:
            merge_section(await self.world(), update.section, update.updates)
        elif ref.kind == ResourceKind.QUEST_LEDGER:
            upsert_quest(await self.quest_ledger(), update.section, update.updates)

        return self.mark_dirty(ref)

    # ─── Commit ──────────────────────────────────────────────

    async def commit(self) -> list[str]:
        """
        Write every dirty document once.

        Returns the labels written. Raises CommitError on the first failed
        write; earlier writes are not undone.
        """
        written: list[str] = []
        for label, ref in list(self._dirty.items()):
            try:
                await self._write(ref)
            except Exception as e:
                logger.error(f"Commit failed at {label} after writing {written}: {e}")
                raise CommitError(label, e, written) from e
            written.append(label)
            del self._dirty[label]
        return written

    async def _write(self, ref: ResourceRef) -> None:
        if ref.kind == ResourceKind.NPC_DOCUMENT:
            await self._world_store.write_npc(ref.key, self._npcs[ref.key])
        elif ref.kind == ResourceKind.LOCATION_STATE:
            await self._state_store.update_custom_state(ref.key, self._locations[ref.key])
        elif ref.kind == ResourceKind.WORLD_STATE:
            await self._world_store.write(self._world)
        elif ref.kind == ResourceKind.QUEST_LEDGER:
            await self._world_store.write_quest_ledger(self._quests)


def _label(ref: ResourceRef) -> str:
    if ref.kind == ResourceKind.NPC_DOCUMENT:
        return npc_document_path(ref.key)
    if ref.kind == ResourceKind.LOCATION_STATE:
        return location_state_path(ref.key)
    if ref.kind == ResourceKind.WORLD_STATE:
        return WORLD_STATE_PATH
    return QUEST_LEDGER_PATH
