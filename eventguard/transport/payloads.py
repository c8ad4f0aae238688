"""Helpers for decoding and fingerprinting raw webhook bodies."""

from __future__ import annotations

import hashlib
from typing import Any

import orjson


class PayloadError(ValueError):
    """Raised when a webhook body is not a JSON object."""


def decode_payload(raw: bytes) -> dict[str, Any]:
    try:
        payload = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise PayloadError(f"invalid JSON body: {exc}") from exc
    if not isinstance(payload, dict):
        raise PayloadError("webhook body must be a JSON object")
    return payload


def payload_digest(raw: bytes) -> str:
    """Return a SHA-256 hex digest of the raw body as received."""
    return hashlib.sha256(raw).hexdigest()
