"""Create the webhook event collection with its unique and TTL indexes.

Reads the mongo options from the server config (EVENTGUARD_CONFIG_PATH).
Safe to run repeatedly.
"""

import asyncio

from eventguard.config import get_server_config
from eventguard.storage.mongo import MongoStorage


async def run() -> None:
    config = get_server_config()
    if config.store.backend != "mongo":
        raise SystemExit(f"store backend is {config.store.backend}, expected mongo")
    options = dict(config.store.options)
    options["ensure_indexes"] = False
    store = MongoStorage(retention_seconds=config.dedup.retention_seconds, **options)
    await store.open()
    try:
        indexes = await store.ensure_indexes()
        print("indexes:")
        for name, info in sorted(indexes.items()):
            print(f"  - {name}: {info['key']}")
            if "expireAfterSeconds" in info:
                seconds = info["expireAfterSeconds"]
                print(f"    ttl: {seconds}s ({seconds / 86400:g} days)")
            if info.get("unique"):
                print("    unique: true")
        print(f"live events: {await store.count()}")
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(run())
