"""Webhook ingestion service."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass

from ..transport.payloads import decode_payload, payload_digest
from ..transport.signatures import verify_signature
from .anti_replay import ClaimResult, EventClaimGuard
from .dispatch import EventDispatcher
from .errors import InfrastructureError
from .validators import validate_event

logger = logging.getLogger(__name__)

STAT_KEYS = ("received", "claimed", "duplicates", "failed", "infrastructure_errors")


class EventProcessingError(RuntimeError):
    """Raised when a handler fails after the event was claimed.

    The claim is kept: the event will not be processed again on redelivery.
    """

    def __init__(self, event_id: str, event_type: str) -> None:
        super().__init__(f"processing failed for {event_type} event {event_id}")
        self.event_id = event_id
        self.event_type = event_type


@dataclass(frozen=True)
class IngestResult:
    event_id: str
    event_type: str
    claim: ClaimResult
    handled: bool = False

    @property
    def duplicate(self) -> bool:
        return self.claim is ClaimResult.ALREADY_CLAIMED


class WebhookEventService:
    def __init__(
        self,
        guard: EventClaimGuard,
        dispatcher: EventDispatcher,
        *,
        signing_secret: str,
        tolerance_seconds: int,
    ) -> None:
        self._guard = guard
        self._dispatcher = dispatcher
        self._signing_secret = signing_secret
        self._tolerance_seconds = tolerance_seconds
        self._stats: Counter[str] = Counter()

    async def ingest(self, raw_body: bytes, signature_header: str) -> IngestResult:
        self._stats["received"] += 1
        verify_signature(
            raw_body,
            signature_header,
            self._signing_secret,
            tolerance_seconds=self._tolerance_seconds,
        )
        payload = decode_payload(raw_body)
        event_type = validate_event(payload)
        event_id = payload["id"]
        logger.info("webhook verified type=%s id=%s", event_type, event_id)

        try:
            claim = await self._guard.try_claim(
                event_id,
                event_type=event_type,
                payload_digest=payload_digest(raw_body),
            )
        except InfrastructureError:
            self._stats["infrastructure_errors"] += 1
            logger.error("could not record event %s", event_id, exc_info=True)
            raise
        if claim is ClaimResult.ALREADY_CLAIMED:
            self._stats["duplicates"] += 1
            logger.info("duplicate delivery of event %s skipped", event_id)
            return IngestResult(event_id=event_id, event_type=event_type, claim=claim)

        self._stats["claimed"] += 1
        try:
            handled = await self._dispatcher.dispatch(payload)
        except Exception as exc:
            self._stats["failed"] += 1
            logger.error(
                "handler failed for claimed event %s (%s)", event_id, event_type, exc_info=True
            )
            raise EventProcessingError(event_id, event_type) from exc
        return IngestResult(event_id=event_id, event_type=event_type, claim=claim, handled=handled)

    def stats(self) -> dict[str, int]:
        return {key: self._stats[key] for key in STAT_KEYS}
