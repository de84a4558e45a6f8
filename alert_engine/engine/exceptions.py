"""Engine runtime exceptions."""


class EngineError(Exception):
    """Base exception for engine runtime errors."""

    pass


class QueueClosedError(EngineError):
    """Raised when an event is offered to a queue that no longer accepts intake."""

    pass
