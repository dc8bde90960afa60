"""
Event bus for engine notifications.

Lets a session loop or UI react to executions and propagations without the
engine knowing who is listening.

Usage:
    from .event_bus import get_event_bus, EventType

    bus = get_event_bus()
    bus.on(EventType.EVENT_EXECUTED, my_handler)

    # Handler receives a WorldEvent
    def my_handler(event: WorldEvent):
        print(f"{event.data['event_id']} ran {event.data['effects']} effects")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Notifications the engine publishes."""

    # Event execution
    EVENT_EXECUTED = "event.executed"
    EVENT_FAILED = "event.failed"
    EFFECT_SKIPPED = "effect.skipped"

    # Propagation
    PROPAGATION_COMPLETED = "propagation.completed"
    PROPAGATION_FAILED = "propagation.failed"
    UPDATES_APPLIED = "updates.applied"

    # Relationship graph cache
    GRAPH_LOADED = "graph.loaded"
    GRAPH_INVALIDATED = "graph.invalidated"


@dataclass
class WorldEvent:
    """
    Payload delivered to listeners.

    Attributes:
        type: The event type
        data: Event-specific payload
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


EventHandler = Callable[[WorldEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners run immediately inside emit(). A listener that raises is
    logged and skipped; the remaining listeners still run.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[WorldEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to an event type. Subscribing twice is a no-op."""
        handlers = self._listeners.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        if event_type in self._listeners and handler in self._listeners[event_type]:
            self._listeners[event_type].remove(handler)

    def emit(self, event_type: EventType, **data) -> WorldEvent:
        """
        Emit an event to all subscribers.

        Returns:
            The emitted WorldEvent (for chaining/testing)
        """
        event = WorldEvent(type=event_type, data=data)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit:]

        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                logger.exception(f"Error in handler for {event_type.value}")

        return event

    def clear(self) -> None:
        """Clear all listeners. Useful for testing."""
        self._listeners.clear()

    def get_history(self, event_type: EventType | None = None) -> list[WorldEvent]:
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))


_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the process-wide event bus, creating it on first use."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the global event bus. Useful for testing."""
    global _event_bus
    _event_bus = None
