"""Inspect and sweep recorded webhook event claims."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request

from ..events.anti_replay import EventClaimGuard
from ..events.errors import InfrastructureError
from ..storage import EventStore

router = APIRouter(prefix="/admin/events", tags=["admin"])


def _get_guard(request: Request) -> EventClaimGuard:
    return request.app.state.claim_guard


def _get_store(request: Request) -> EventStore:
    return request.app.state.store


@router.post("/purge")
async def purge(store: EventStore = Depends(_get_store)) -> dict[str, Any]:
    try:
        removed = await store.purge_expired()
    except InfrastructureError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"removed": removed, "store_backend": store.backend}


@router.get("/{event_id}")
async def lookup(
    event_id: str,
    guard: EventClaimGuard = Depends(_get_guard),
) -> dict[str, Any]:
    try:
        record = await guard.lookup(event_id)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except InfrastructureError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if record is None:
        raise HTTPException(status_code=404, detail=f"event {event_id} not claimed")
    return record.to_json()
