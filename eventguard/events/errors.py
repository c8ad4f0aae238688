"""Error taxonomy for webhook event claims."""

from __future__ import annotations


class DuplicateEventError(Exception):
    """Raised by a store when the event id is already recorded."""

    def __init__(self, event_id: str) -> None:
        super().__init__(f"event {event_id} already claimed")
        self.event_id = event_id


class InfrastructureError(RuntimeError):
    """Raised when the store cannot be reached or a record cannot be serialized."""

    def __init__(self, message: str, *, backend: str = "unknown") -> None:
        super().__init__(message)
        self.backend = backend
