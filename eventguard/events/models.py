"""Webhook event record and boundary validation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

MAX_EVENT_ID_LENGTH = 255


def validate_event_id(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("event_id must be a string")
    if not value.strip():
        raise ValueError("event_id missing")
    # Ids are opaque: an altered copy would collide with a distinct id.
    if value != value.strip():
        raise ValueError("event_id has leading or trailing whitespace")
    if len(value) > MAX_EVENT_ID_LENGTH:
        raise ValueError(f"event_id longer than {MAX_EVENT_ID_LENGTH} characters")
    return value


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class WebhookEventRecord:
    event_id: str
    created_at: datetime
    event_type: str | None = None
    payload_digest: str | None = None

    @classmethod
    def create(
        cls,
        event_id: str,
        now: datetime | None = None,
        *,
        event_type: str | None = None,
        payload_digest: str | None = None,
    ) -> "WebhookEventRecord":
        created_at = ensure_utc(now) if now else datetime.now(timezone.utc)
        return cls(
            event_id=validate_event_id(event_id),
            created_at=created_at,
            event_type=event_type,
            payload_digest=payload_digest,
        )

    def expires_at(self, retention_seconds: int) -> datetime:
        return self.created_at + timedelta(seconds=retention_seconds)

    def is_expired(self, now: datetime, retention_seconds: int) -> bool:
        return self.expires_at(retention_seconds) <= ensure_utc(now)

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "eventId": self.event_id,
            "createdAt": self.created_at,
        }
        if self.event_type is not None:
            document["eventType"] = self.event_type
        if self.payload_digest is not None:
            document["payloadDigest"] = self.payload_digest
        return document

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "WebhookEventRecord":
        created_at = document["createdAt"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            event_id=document["eventId"],
            created_at=ensure_utc(created_at),
            event_type=document.get("eventType"),
            payload_digest=document.get("payloadDigest"),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "created_at": self.created_at.isoformat().replace("+00:00", "Z"),
            "event_type": self.event_type,
            "payload_digest": self.payload_digest,
        }
