"""Event replay guard based on event_id uniqueness enforced by the store."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable

from .errors import DuplicateEventError, InfrastructureError
from .models import WebhookEventRecord, ensure_utc, validate_event_id

if TYPE_CHECKING:
    from ..storage import EventStore

logger = logging.getLogger(__name__)


class ClaimResult(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"


class EventClaimGuard:
    """Records each external event id at most once.

    Correctness rests on the store's atomic insert; the guard holds no lock
    of its own, so concurrent callers racing on the same id see exactly one
    ``CLAIMED``. Claims are never released early; they disappear only when
    the store expires them.
    """

    def __init__(self, store: EventStore, clock: Callable[[], datetime] | None = None) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def try_claim(
        self,
        event_id: str,
        now: datetime | None = None,
        *,
        event_type: str | None = None,
        payload_digest: str | None = None,
    ) -> ClaimResult:
        record = WebhookEventRecord.create(
            event_id,
            ensure_utc(now) if now else self._clock(),
            event_type=event_type,
            payload_digest=payload_digest,
        )
        try:
            await self._store.insert(record)
        except DuplicateEventError:
            logger.debug("event %s already claimed", record.event_id)
            return ClaimResult.ALREADY_CLAIMED
        except InfrastructureError:
            raise
        except Exception as exc:
            raise InfrastructureError(
                f"claim for {record.event_id} failed: {exc}", backend=self._store.backend
            ) from exc
        return ClaimResult.CLAIMED

    async def lookup(self, event_id: str) -> WebhookEventRecord | None:
        return await self._store.get(validate_event_id(event_id))
