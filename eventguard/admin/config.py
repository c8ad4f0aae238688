"""Expose currently loaded server config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig
from ..events.dispatch import EventDispatcher

router = APIRouter(prefix="/admin", tags=["admin"])

# Connection strings may embed credentials.
_REDACTED_OPTIONS = {"uri", "url", "dsn", "password", "credentials_path"}


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


def _get_dispatcher(request: Request) -> EventDispatcher:
    return request.app.state.dispatcher


@router.get("/config")
async def config(
    request: Request,
    config: ServerConfig = Depends(_get_config),
    dispatcher: EventDispatcher = Depends(_get_dispatcher),
) -> dict:
    options = {
        key: ("***" if key in _REDACTED_OPTIONS else value)
        for key, value in sorted(config.store.options.items())
    }
    return {
        "version": request.app.version,
        "storage_backend": config.store.backend,
        "storage_options": options,
        "retention_seconds": config.dedup.retention_seconds,
        "signature_tolerance_seconds": config.webhook.tolerance_seconds,
        "signing_secret_configured": bool(config.webhook.signing_secret),
        "handled_event_types": dispatcher.handled_types(),
    }
