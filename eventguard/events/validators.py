"""Schema validation wrappers for webhook event payloads."""

from __future__ import annotations

from ..validation.validator import get_schema_registry

EVENT_SCHEMA = "stripe_event"


def validate_event(payload: dict) -> str:
    registry = get_schema_registry()
    registry.validate(EVENT_SCHEMA, payload)
    return payload["type"]
