from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from pymongo.errors import OperationFailure

from eventguard.config import load_server_config
from eventguard.events.dispatch import EventDispatcher
from eventguard.events.errors import InfrastructureError
from eventguard.events.models import WebhookEventRecord
from eventguard.storage import build_storage, open_store
from eventguard.storage.in_memory import InMemoryStorage
from eventguard.storage.redis import RedisStorage


def _config(tmp_path: Path, store: dict):
    path = tmp_path / "server.yaml"
    path.write_text(yaml.safe_dump({"store": store, "dedup": {"retention_seconds": 3600}}))
    return load_server_config(path)


class TestEventDispatcher:
    @pytest.mark.asyncio
    async def test_decorator_registers_for_each_type(self):
        dispatcher = EventDispatcher()
        calls = []

        @dispatcher.on("customer.subscription.created", "customer.subscription.updated")
        async def on_subscription(event):
            calls.append(event["type"])

        await dispatcher.dispatch({"id": "evt_1", "type": "customer.subscription.updated"})

        assert calls == ["customer.subscription.updated"]
        assert dispatcher.handled_types() == [
            "customer.subscription.created",
            "customer.subscription.updated",
        ]

    @pytest.mark.asyncio
    async def test_handlers_run_in_registration_order(self):
        dispatcher = EventDispatcher()
        order = []
        dispatcher.register("invoice.paid", AsyncMock(side_effect=lambda e: order.append("first")))
        dispatcher.register("invoice.paid", AsyncMock(side_effect=lambda e: order.append("second")))

        assert await dispatcher.dispatch({"id": "evt_2", "type": "invoice.paid"}) is True
        assert order == ["first", "second"]

    @pytest.mark.asyncio
    async def test_unregistered_type_returns_false(self):
        assert await EventDispatcher().dispatch({"id": "evt_3", "type": "charge.refunded"}) is False

    def test_empty_event_type_rejected(self):
        with pytest.raises(ValueError):
            EventDispatcher().register("", AsyncMock())


class TestStorageFactory:
    def test_builds_in_memory_by_default(self, tmp_path):
        assert isinstance(build_storage(_config(tmp_path, {})), InMemoryStorage)

    def test_passes_retention_to_backend(self, tmp_path):
        store = build_storage(
            _config(tmp_path, {"backend": "redis", "options": {"url": "redis://cache:6379/1"}})
        )
        assert isinstance(store, RedisStorage)
        assert store._retention == 3600

    def test_unknown_backend_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="unknown storage backend"):
            build_storage(_config(tmp_path, {"backend": "cassandra"}))

    @pytest.mark.asyncio
    async def test_open_store_closes_on_exit(self, tmp_path):
        async with open_store(_config(tmp_path, {})) as store:
            await store.insert(WebhookEventRecord.create("evt_1"))
            assert await store.count() == 1
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_open_store_releases_client_when_index_setup_fails(self, tmp_path):
        config = _config(tmp_path, {"backend": "mongo", "options": {"uri": "mongodb://db:27017"}})
        with patch("eventguard.storage.mongo.MongoClient") as client_cls:
            client = client_cls.return_value
            collection = client.__getitem__.return_value.__getitem__.return_value
            collection.create_index.side_effect = OperationFailure("not authorized", code=13)

            with pytest.raises(InfrastructureError):
                async with open_store(config):
                    pass

        client.close.assert_called_once_with()
