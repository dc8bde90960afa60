"""
Exceptions raised inside the engine.

Public operations catch these at their boundary and turn them into result
objects; callers of the executor or propagator never see them.
"""


class EngineError(Exception):
    """Base class for engine errors."""
    pass


class StoreError(EngineError):
    """A collaborator store could not read or write a document."""
    pass


class EventDefinitionError(EngineError):
    """An event definition is missing or malformed."""

    def __init__(self, event_id: str, location_id: str, reason: str):
        self.event_id = event_id
        self.location_id = location_id
        self.reason = reason
        super().__init__(reason)


class EffectError(EngineError):
    """A single effect could not be applied."""

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Failed to apply effect {kind}: {reason}")


class UnknownResourceError(EngineError):
    """A state update addresses a path no writer handles."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"No writer for resource: {path}")


class CommitError(EngineError):
    """
    Flushing staged documents failed part-way.

    written lists the documents that were already persisted before the
    failure; they are not rolled back.
    """

    def __init__(self, resource: str, cause: Exception, written: list[str]):
        self.resource = resource
        self.cause = cause
        self.written = list(written)
        super().__init__(f"Failed to write {resource}: {cause}")
