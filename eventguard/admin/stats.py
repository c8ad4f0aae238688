"""Operational stats endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..events.errors import InfrastructureError
from ..events.handler import WebhookEventService
from ..storage import EventStore

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_event_service(request: Request) -> WebhookEventService:
    return request.app.state.event_service


def _get_store(request: Request) -> EventStore:
    return request.app.state.store


@router.get("/stats")
async def stats(
    service: WebhookEventService = Depends(_get_event_service),
    store: EventStore = Depends(_get_store),
) -> dict[str, Any]:
    counters = service.stats()
    try:
        live_records = await store.count()
    except InfrastructureError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    received = counters["received"]
    duplicate_rate = (counters["duplicates"] / received) if received else 0.0
    return {
        **counters,
        "duplicate_rate": round(duplicate_rate, 4),
        "live_records": live_records,
        "store_backend": store.backend,
    }
