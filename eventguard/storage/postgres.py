"""Postgres event store leveraging asyncpg and a primary-key constraint."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import asyncpg

from ..config import DEFAULT_RETENTION_SECONDS
from ..events.errors import DuplicateEventError, InfrastructureError
from ..events.models import WebhookEventRecord, ensure_utc

_CLAIM_SQL = """
INSERT INTO webhook_events(event_id, created_at, event_type, payload_digest)
VALUES($1, $2, $3, $4)
ON CONFLICT (event_id) DO UPDATE
SET created_at = EXCLUDED.created_at,
    event_type = EXCLUDED.event_type,
    payload_digest = EXCLUDED.payload_digest
WHERE webhook_events.created_at <= $5
RETURNING event_id
"""


class PostgresStorage:
    backend = "postgres"

    def __init__(
        self,
        *,
        dsn: str | None = None,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        **connect_kwargs: Any,
    ) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._retention = retention_seconds
        self._pool: asyncpg.Pool | None = None

    def _cutoff(self, now: datetime) -> datetime:
        return ensure_utc(now) - timedelta(seconds=self._retention)

    def _decode(self, row: Any) -> WebhookEventRecord:
        return WebhookEventRecord(
            event_id=row["event_id"],
            created_at=ensure_utc(row["created_at"]),
            event_type=row["event_type"],
            payload_digest=row["payload_digest"],
        )

    async def open(self) -> None:
        if self._pool is not None:
            return
        try:
            pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
        except (asyncpg.PostgresError, OSError) as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS webhook_events (
                        event_id TEXT PRIMARY KEY,
                        created_at TIMESTAMPTZ NOT NULL,
                        event_type TEXT,
                        payload_digest TEXT
                    );
                    CREATE INDEX IF NOT EXISTS idx_webhook_events_created_at
                    ON webhook_events (created_at);
                    """
                )
        except BaseException as exc:
            await pool.close()
            if isinstance(exc, (asyncpg.PostgresError, OSError)):
                raise InfrastructureError(str(exc), backend=self.backend) from exc
            raise
        self._pool = pool

    async def close(self) -> None:
        if self._pool is not None:
            pool, self._pool = self._pool, None
            await pool.close()

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise InfrastructureError("postgres store is not open", backend=self.backend)
        return self._pool

    async def insert(self, record: WebhookEventRecord) -> None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                claimed = await conn.fetchval(
                    _CLAIM_SQL,
                    record.event_id,
                    record.created_at,
                    record.event_type,
                    record.payload_digest,
                    self._cutoff(record.created_at),
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        if claimed is None:
            raise DuplicateEventError(record.event_id)

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    """SELECT event_id, created_at, event_type, payload_digest
                       FROM webhook_events WHERE event_id=$1 AND created_at > $2""",
                    event_id,
                    self._cutoff(datetime.now(timezone.utc)),
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        if not row:
            return None
        return self._decode(row)

    async def count(self) -> int:
        pool = self._require_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(
                    "SELECT COUNT(*) FROM webhook_events WHERE created_at > $1",
                    self._cutoff(datetime.now(timezone.utc)),
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc

    async def purge_expired(self, now: datetime | None = None) -> int:
        pool = self._require_pool()
        ref = now or datetime.now(timezone.utc)
        try:
            async with pool.acquire() as conn:
                status = await conn.execute(
                    "DELETE FROM webhook_events WHERE created_at <= $1",
                    self._cutoff(ref),
                )
        except (asyncpg.PostgresError, OSError) as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(status.split()[-1])

    async def ping(self) -> bool:
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except (asyncpg.PostgresError, OSError):
            return False
        return True
