"""MongoDB event store backed by a unique index and a TTL index."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from bson.errors import InvalidDocument
from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, OperationFailure, PyMongoError

from ..config import DEFAULT_RETENTION_SECONDS
from ..events.errors import DuplicateEventError, InfrastructureError
from ..events.models import WebhookEventRecord, ensure_utc

logger = logging.getLogger(__name__)

UNIQUE_INDEX_NAME = "eventId_unique"
TTL_INDEX_NAME = "createdAt_ttl"
# IndexOptionsConflict, IndexKeySpecsConflict
_INDEX_CONFLICT_CODES = {85, 86}


class MongoStorage:
    backend = "mongo"

    def __init__(
        self,
        *,
        uri: str,
        database: str = "invoice-app",
        collection: str = "stripeWebhookEvents",
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        ensure_indexes: bool = True,
        **client_kwargs: Any,
    ) -> None:
        if not uri:
            raise ValueError("mongo uri missing")
        self._uri = uri
        self._database_name = database
        self._collection_name = collection
        self._retention = retention_seconds
        self._ensure_indexes_on_open = ensure_indexes
        self._client_kwargs = client_kwargs
        self._client: MongoClient | None = None

    def _collection(self):
        if self._client is None:
            raise InfrastructureError("mongo store is not open", backend=self.backend)
        return self._client[self._database_name][self._collection_name]

    async def _run(self, func: Callable, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except DuplicateKeyError:
            raise
        except (PyMongoError, InvalidDocument) as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc

    async def open(self) -> None:
        if self._client is not None:
            return
        self._client = MongoClient(self._uri, tz_aware=True, **self._client_kwargs)
        if self._ensure_indexes_on_open:
            try:
                await self.ensure_indexes()
            except BaseException:
                await self.close()
                raise

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await asyncio.to_thread(client.close)

    async def ensure_indexes(self) -> dict[str, Any]:
        """Create the collection, the unique eventId index and the createdAt TTL index.

        Safe to run repeatedly: conflicting index definitions that already
        exist are reported and left in place.
        """
        database = self._collection().database
        existing = await self._run(
            database.list_collection_names, filter={"name": self._collection_name}
        )
        if not existing:
            await self._run(database.create_collection, self._collection_name)
            logger.info("created collection %s", self._collection_name)
        await self._create_index(
            [("eventId", ASCENDING)], unique=True, name=UNIQUE_INDEX_NAME
        )
        await self._create_index(
            [("createdAt", ASCENDING)],
            expireAfterSeconds=self._retention,
            name=TTL_INDEX_NAME,
        )
        return await self._run(self._collection().index_information)

    async def _create_index(self, keys: list[tuple[str, int]], **options: Any) -> None:
        try:
            await asyncio.to_thread(self._collection().create_index, keys, **options)
        except OperationFailure as exc:
            if exc.code in _INDEX_CONFLICT_CODES:
                logger.info("index %s already exists", options.get("name"))
                return
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        except PyMongoError as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc
        logger.info("index %s ready", options.get("name"))

    def _cutoff(self, now: datetime) -> datetime:
        return ensure_utc(now) - timedelta(seconds=self._retention)

    async def insert(self, record: WebhookEventRecord) -> None:
        try:
            await self._run(self._collection().insert_one, record.to_document())
            return
        except DuplicateKeyError:
            pass
        # The TTL monitor runs periodically, so an expired record may still be
        # present. Replacing it is atomic per document.
        replaced = await self._run(
            self._collection().find_one_and_replace,
            {"eventId": record.event_id, "createdAt": {"$lte": self._cutoff(record.created_at)}},
            record.to_document(),
        )
        if replaced is None:
            raise DuplicateEventError(record.event_id)

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        document = await self._run(
            self._collection().find_one,
            {"eventId": event_id, "createdAt": {"$gt": self._cutoff(datetime.now(timezone.utc))}},
        )
        if document is None:
            return None
        return WebhookEventRecord.from_document(document)

    async def count(self) -> int:
        return await self._run(
            self._collection().count_documents,
            {"createdAt": {"$gt": self._cutoff(datetime.now(timezone.utc))}},
        )

    async def purge_expired(self, now: datetime | None = None) -> int:
        ref = now or datetime.now(timezone.utc)
        result = await self._run(
            self._collection().delete_many, {"createdAt": {"$lte": self._cutoff(ref)}}
        )
        return result.deleted_count

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._run(self._client.admin.command, "ping")
        except InfrastructureError:
            return False
        return True
