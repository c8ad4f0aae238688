"""Firestore event store leveraging google-cloud-firestore."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.oauth2 import service_account

from ..config import DEFAULT_RETENTION_SECONDS
from ..events.errors import DuplicateEventError, InfrastructureError
from ..events.models import WebhookEventRecord


class FirestoreStorage:
    """Documents are keyed by event id; ``expireAt`` feeds a Firestore TTL policy."""

    backend = "firestore"

    def __init__(
        self,
        *,
        project_id: str,
        collection: str = "stripeWebhookEvents",
        credentials_path: str | None = None,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
    ) -> None:
        if not project_id:
            raise ValueError("project_id required for firestore backend")
        self._project_id = project_id
        self._collection_name = collection
        self._credentials_path = credentials_path
        self._retention = retention_seconds
        self._client: firestore.Client | None = None

    def _collection(self):
        if self._client is None:
            raise InfrastructureError("firestore store is not open", backend=self.backend)
        return self._client.collection(self._collection_name)

    async def _run(self, func: Callable, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except gexc.AlreadyExists:
            raise
        except gexc.GoogleAPIError as exc:
            raise InfrastructureError(str(exc), backend=self.backend) from exc

    def _encode(self, record: WebhookEventRecord) -> dict[str, Any]:
        document = record.to_document()
        document["expireAt"] = record.expires_at(self._retention)
        return document

    async def open(self) -> None:
        if self._client is not None:
            return
        client_kwargs: dict[str, Any] = {"project": self._project_id}
        if self._credentials_path:
            client_kwargs["credentials"] = service_account.Credentials.from_service_account_file(
                self._credentials_path
            )
        self._client = firestore.Client(**client_kwargs)

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await asyncio.to_thread(client.close)

    async def insert(self, record: WebhookEventRecord) -> None:
        ref = self._collection().document(record.event_id)
        try:
            await self._run(ref.create, self._encode(record))
            return
        except gexc.AlreadyExists:
            pass
        replaced = await self._run(self._replace_if_expired, ref, record)
        if not replaced:
            raise DuplicateEventError(record.event_id)

    def _replace_if_expired(self, ref, record: WebhookEventRecord) -> bool:
        # TTL deletion is eventual, so an expired document may still exist.
        @firestore.transactional
        def _apply(transaction) -> bool:
            snapshot = ref.get(transaction=transaction)
            if snapshot.exists:
                existing = WebhookEventRecord.from_document(snapshot.to_dict())
                if not existing.is_expired(record.created_at, self._retention):
                    return False
            transaction.set(ref, self._encode(record))
            return True

        return _apply(self._client.transaction())

    async def get(self, event_id: str) -> WebhookEventRecord | None:
        snapshot = await self._run(self._collection().document(event_id).get)
        if not snapshot.exists:
            return None
        record = WebhookEventRecord.from_document(snapshot.to_dict())
        if record.is_expired(datetime.now(timezone.utc), self._retention):
            return None
        return record

    async def count(self) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=self._retention)
        query = self._collection().where(filter=firestore.FieldFilter("createdAt", ">", cutoff))
        results = await self._run(lambda: query.count().get())
        return int(results[0][0].value)

    async def purge_expired(self, now: datetime | None = None) -> int:
        return 0

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._run(lambda: list(self._collection().limit(1).stream()))
        except InfrastructureError:
            return False
        return True
