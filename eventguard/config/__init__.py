"""Configuration helpers for the webhook service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"

DEFAULT_RETENTION_SECONDS = 7 * 24 * 60 * 60


@dataclass(frozen=True)
class StoreConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class DedupConfig:
    retention_seconds: int


@dataclass(frozen=True)
class WebhookConfig:
    signing_secret: str
    tolerance_seconds: int


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class ServerConfig:
    listen: Mapping[str, Any]
    store: StoreConfig
    dedup: DedupConfig
    webhook: WebhookConfig
    logging: LoggingConfig


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def load_server_config(path: Path) -> ServerConfig:
    data = _load_yaml(path)
    store = data.get("store", {})
    dedup = data.get("dedup", {})
    webhook = data.get("webhook", {})
    logging_section = data.get("logging", {})
    retention = int(dedup.get("retention_seconds", DEFAULT_RETENTION_SECONDS))
    if retention <= 0:
        raise ValueError("dedup.retention_seconds must be positive")
    return ServerConfig(
        listen=data.get("listen", {}),
        store=StoreConfig(
            backend=str(store.get("backend", "in_memory")),
            options=dict(store.get("options") or {}),
        ),
        dedup=DedupConfig(retention_seconds=retention),
        webhook=WebhookConfig(
            signing_secret=str(
                webhook.get("signing_secret") or os.getenv("STRIPE_WEBHOOK_SECRET", "")
            ),
            tolerance_seconds=int(webhook.get("tolerance_seconds", 300)),
        ),
        logging=LoggingConfig(level=str(logging_section.get("level", "INFO")).upper()),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("EVENTGUARD_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return load_server_config(path)
