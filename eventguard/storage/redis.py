"""Redis event store using SET NX with key expiry."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import orjson
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ..config import DEFAULT_RETENTION_SECONDS
from ..events.errors import DuplicateEventError, InfrastructureError
from ..events.models import WebhookEventRecord


class RedisStorage:
    backend = "redis"

    def __init__(
        self,
        *,
        url: str,
        prefix: str = "eventguard:events",
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
    ) -> None:
        if not url:
            raise ValueError("redis url missing")
        self._url = url
        self._prefix = prefix.rstrip(":")
        self._retention = retention_seconds
        self._redis: aioredis.Redis | None = None

    def _event_key(self, event_id: str) -> str:
        return f"{self._prefix}:{event_id}"

    def _client(self) -> aioredis.Redis:
        if self._redis is None:
            raise InfrastructureError("redis store is not open", backend=self.backend)
        return self._redis

    async def open(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(self._url)

    async def close(self) -> None:
        if self._redis is not None:
            client, self._redis = self._redis, None
            await client.aclose()

    def _encode(self, record: WebhookEventRecord) -> bytes:
        document: dict[str, Any] = record.to_document()
        document["createdAt"] = record.created_at.isoformat()
        return orjson.dumps(document)

    async def insert(self, record: WebhookEventRecord) -> None:
        # Absolute expiry keeps the TTL anchored to created_at, not to the clock
        # of this host. PXAT needs Redis 6.2+.
        expire_at_ms = int(record.expires_at(self._retention).timestamp() * 1000)
        try:
            created = await self._client().set(
                self._event_key(record.event_id),
                self._encode(record),
                nx=True,
                pxat=expire_at_ms,
            )
        except RedisError as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        if not created:
            raise DuplicateEventError(record.event_id)

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        try:
            raw = await self._client().get(self._event_key(event_id))
        except RedisError as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        if raw is None:
            return None
        return WebhookEventRecord.from_document(orjson.loads(raw))

    async def count(self) -> int:
        pattern = self._event_key("*")
        total = 0
        cursor = 0
        try:
            while True:
                cursor, batch = await self._client().scan(cursor=cursor, match=pattern, count=100)
                total += len(batch)
                if cursor == 0:
                    break
        except RedisError as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        return total

    async def purge_expired(self, now: datetime | None = None) -> int:
        return 0

    async def ping(self) -> bool:
        try:
            return bool(await self._client().ping())
        except (RedisError, InfrastructureError):
            return False
