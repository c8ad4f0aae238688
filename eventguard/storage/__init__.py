"""Storage backend factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Protocol

from ..config import ServerConfig
from ..events.models import WebhookEventRecord
from .firestore import FirestoreStorage
from .in_memory import InMemoryStorage
from .mongo import MongoStorage
from .postgres import PostgresStorage
from .redis import RedisStorage


class EventStore(Protocol):
    """Persisted collection of claimed webhook event ids."""

    backend: str

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def insert(self, record: WebhookEventRecord) -> None:
        """Insert atomically. Raises DuplicateEventError when a live record exists."""
        ...

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        """Return the live record for ``event_id``; expired records read as absent."""
        ...

    async def count(self) -> int: ...

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete expired records. Backends with store-managed expiry return 0."""
        ...

    async def ping(self) -> bool: ...


def build_storage(config: ServerConfig) -> EventStore:
    backend = config.store.backend
    options = dict(config.store.options)
    retention = config.dedup.retention_seconds
    if backend == "in_memory":
        return InMemoryStorage(retention_seconds=retention)
    if backend == "mongo":
        return MongoStorage(retention_seconds=retention, **options)
    if backend == "redis":
        return RedisStorage(retention_seconds=retention, **options)
    if backend == "postgres":
        return PostgresStorage(retention_seconds=retention, **options)
    if backend == "firestore":
        return FirestoreStorage(retention_seconds=retention, **options)
    raise ValueError(f"unknown storage backend {backend}")


@asynccontextmanager
async def open_store(config: ServerConfig) -> AsyncIterator[EventStore]:
    store = build_storage(config)
    try:
        await store.open()
        yield store
    finally:
        await store.close()
