"""In-memory event store for development and tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable

from ..config import DEFAULT_RETENTION_SECONDS
from ..events.errors import DuplicateEventError
from ..events.models import WebhookEventRecord, ensure_utc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStorage:
    backend = "in_memory"

    def __init__(
        self,
        *,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._records: dict[str, WebhookEventRecord] = {}
        self._retention = retention_seconds
        self._clock = clock
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        async with self._lock:
            self._records.clear()

    async def insert(self, record: WebhookEventRecord) -> None:
        async with self._lock:
            existing = self._records.get(record.event_id)
            if existing and not existing.is_expired(record.created_at, self._retention):
                raise DuplicateEventError(record.event_id)
            self._records[record.event_id] = record

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        async with self._lock:
            record = self._records.get(event_id)
            if record is None or record.is_expired(self._clock(), self._retention):
                return None
            return record

    async def count(self) -> int:
        now = self._clock()
        async with self._lock:
            return sum(
                1 for record in self._records.values() if not record.is_expired(now, self._retention)
            )

    async def purge_expired(self, now: datetime | None = None) -> int:
        ref = ensure_utc(now) if now else self._clock()
        async with self._lock:
            expired = [
                event_id
                for event_id, record in self._records.items()
                if record.is_expired(ref, self._retention)
            ]
            for event_id in expired:
                del self._records[event_id]
            return len(expired)

    async def ping(self) -> bool:
        return True
