"""
Event executor.

Executes a triggered calendar event: loads its definition from the
location's Events.md, applies each effect in declaration order, marks the
event's schedule status, and returns one ExecutionResult.

Execution contract:
- Effects run strictly in declaration order; the first failure stops the rest
- With staged writes (the default) effects mutate an in-memory transaction
  and nothing is written unless every effect succeeds
- With staged writes off, each effect is written as soon as it succeeds, so
  a failure on effect N leaves effects 1..N-1 persisted even though the
  result reports none applied
- execute() never raises; every failure comes back as a result
"""

from __future__ import annotations

import logging
import time
from typing import Any

from pydantic import ValidationError

from ..state.errors import CommitError, EffectError, EventDefinitionError
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import (
    ErrorType,
    EventDefinition,
    EventStatus,
    ExecutionResult,
    GameState,
    ScheduledEvent,
)
from ..state.store import LocationDataLoader, ScheduleTracker, StateStore, WorldGraphStore
from ..state.transaction import WorldStateTransaction
from .effects import EffectContext, apply_effect
from .narrative import generate_event_narrative

logger = logging.getLogger(__name__)


class EventExecutor:
    """
    Applies event definitions to the world.

    Collaborators are injected; use create_event_executor() or the engine
    factory for the file-backed defaults.
    """

    def __init__(
        self,
        location_loader: LocationDataLoader,
        state_store: StateStore,
        schedule_tracker: ScheduleTracker,
        world_store: WorldGraphStore,
        staged_writes: bool = True,
        bus: EventBus | None = None,
    ):
        self.location_loader = location_loader
        self.state_store = state_store
        self.schedule_tracker = schedule_tracker
        self.world_store = world_store
        self.staged_writes = staged_writes
        self._bus = bus or get_event_bus()

    async def load_event_definition(self, event_id: str, location_id: str) -> EventDefinition:
        """Load a definition. Raises EventDefinitionError."""
        return await self.location_loader.load_event_definition(event_id, location_id)

    def generate_event_narrative(self, event: Any, player_present: bool = False) -> str:
        return generate_event_narrative(event, player_present)

    async def execute(
        self,
        event: ScheduledEvent | dict | None,
        game_state: GameState | dict | None = None,
    ) -> ExecutionResult:
        """
        Execute an event and apply all of its effects.

        Args:
            event: The triggered calendar entry (needs eventId and locationId)
            game_state: Caller context; playerPresent picks the narrative voice

        Returns:
            ExecutionResult. On failure error_type is one of invalid_input,
            event_definition_load_failed, effect_application_failed or
            unexpected_error.
        """
        started = time.perf_counter()

        def result(**fields) -> ExecutionResult:
            return ExecutionResult(
                execution_time_ms=(time.perf_counter() - started) * 1000,
                **fields,
            )

        try:
            scheduled = event if isinstance(event, ScheduledEvent) else ScheduledEvent.model_validate(event or {})
        except ValidationError:
            return result(
                success=False,
                error="Event must have eventId and locationId",
                error_type=ErrorType.INVALID_INPUT,
            )

        try:
            game = game_state if isinstance(game_state, GameState) else GameState.model_validate(game_state or {})
        except ValidationError as e:
            return result(
                success=False,
                error=f"Invalid gameState: {e.error_count()} field(s) rejected ({_first_error(e)})",
                error_type=ErrorType.INVALID_INPUT,
            )

        try:
            return await self._execute(scheduled, game, result)
        except Exception as e:
            logger.exception(f"Unexpected error executing event {scheduled.event_id}")
            await self._mark(scheduled.event_id, EventStatus.FAILED)
            self._bus.emit(EventType.EVENT_FAILED, event_id=scheduled.event_id, error=str(e))
            return result(
                success=False,
                error=f"Unexpected error: {e}",
                error_type=ErrorType.UNEXPECTED_ERROR,
            )

    async def _execute(self, scheduled: ScheduledEvent, game: GameState, result) -> ExecutionResult:
        event_id = scheduled.event_id

        try:
            definition = await self.load_event_definition(event_id, scheduled.location_id)
        except EventDefinitionError as e:
            logger.warning(f"Could not load event {event_id} at {scheduled.location_id}: {e.reason}")
            return await self._fail(event_id, result, e.reason, ErrorType.EVENT_DEFINITION_LOAD_FAILED)

        transaction = WorldStateTransaction(self.world_store, self.state_store)
        ctx = EffectContext(transaction=transaction, location_id=scheduled.location_id, game_state=game)
        effects_applied: list[dict] = []
        state_updates: list[dict] = []

        for effect in definition.effects:
            try:
                descriptor = await apply_effect(effect, ctx)
                if descriptor is None:
                    kind = effect.get("type") if isinstance(effect, dict) else None
                    self._bus.emit(EventType.EFFECT_SKIPPED, event_id=event_id, kind=kind)
                    continue
                if not self.staged_writes:
                    await transaction.commit()
            except (EffectError, CommitError) as e:
                logger.error(f"Error applying effect in event {event_id}: {e}")
                return await self._fail(event_id, result, _effect_error_message(effect, e),
                                        ErrorType.EFFECT_APPLICATION_FAILED)

            effects_applied.append(dict(effect))
            state_updates.append(descriptor)

        if self.staged_writes:
            try:
                await transaction.commit()
            except CommitError as e:
                logger.error(f"Commit failed for event {event_id}; written before failure: {e.written}")
                return await self._fail(
                    event_id, result,
                    f"Failed to commit effects: {e} (rollback required)",
                    ErrorType.EFFECT_APPLICATION_FAILED,
                )

        await self._mark(event_id, EventStatus.COMPLETED)

        narrative_source = {
            **scheduled.model_dump(by_alias=True),
            **definition.model_dump(by_alias=True),
        }
        narrative = generate_event_narrative(narrative_source, game.player_present)

        outcome = result(
            success=True,
            effects_applied=effects_applied,
            state_updates=state_updates,
            narrative=narrative,
        )
        logger.info(
            f"Executed event {event_id}: {len(effects_applied)} effects "
            f"in {outcome.execution_time_ms:.1f}ms"
        )
        self._bus.emit(
            EventType.EVENT_EXECUTED,
            event_id=event_id,
            location_id=scheduled.location_id,
            effects=len(effects_applied),
        )
        return outcome

    async def _fail(self, event_id: str, result, error: str, error_type: ErrorType) -> ExecutionResult:
        await self._mark(event_id, EventStatus.FAILED)
        self._bus.emit(EventType.EVENT_FAILED, event_id=event_id, error=error, error_type=error_type.value)
        return result(success=False, error=error, error_type=error_type)

    async def _mark(self, event_id: str, status: EventStatus) -> None:
        """Update schedule status. A tracker failure doesn't change the outcome."""
        try:
            await self.schedule_tracker.update_event_status(event_id, status)
        except Exception as e:
            logger.warning(f"Failed to mark event {event_id} as {status.value}: {e}")


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "gameState"
    return f"{location}: {first['msg']}"


def _effect_error_message(effect: Any, error: Exception) -> str:
    if isinstance(error, EffectError):
        return str(error)
    kind = effect.get("type", "unknown") if isinstance(effect, dict) else "unknown"
    return f"Failed to apply effect {kind}: {error}"


def create_event_executor(
    location_loader: LocationDataLoader,
    state_store: StateStore,
    schedule_tracker: ScheduleTracker,
    world_store: WorldGraphStore,
    staged_writes: bool = True,
) -> EventExecutor:
    """Create an executor over the given collaborators."""
    return EventExecutor(
        location_loader=location_loader,
        state_store=state_store,
        schedule_tracker=schedule_tracker,
        world_store=world_store,
        staged_writes=staged_writes,
    )
