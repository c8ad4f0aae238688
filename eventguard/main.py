from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from jsonschema import ValidationError

from .admin import config as admin_config
from .admin import events as admin_events
from .admin import health as admin_health
from .admin import stats as admin_stats
from .config import ServerConfig, get_server_config
from .events.anti_replay import EventClaimGuard
from .events.dispatch import EventDispatcher
from .events.errors import InfrastructureError
from .events.handler import EventProcessingError, WebhookEventService
from .storage import open_store
from .validation.validator import get_schema_registry

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    logging.basicConfig(level=server_config.logging.level)
    get_schema_registry()
    dispatcher = getattr(app.state, "dispatcher", None) or EventDispatcher()

    async with open_store(server_config) as store:
        claim_guard = EventClaimGuard(store)
        event_service = WebhookEventService(
            claim_guard,
            dispatcher,
            signing_secret=server_config.webhook.signing_secret,
            tolerance_seconds=server_config.webhook.tolerance_seconds,
        )
        if not server_config.webhook.signing_secret:
            logger.warning("webhook signing secret is not configured; deliveries will be rejected")

        app.state.server_config = server_config
        app.state.store = store
        app.state.claim_guard = claim_guard
        app.state.dispatcher = dispatcher
        app.state.event_service = event_service
        app.state.start_time = datetime.now(timezone.utc)
        logger.info(
            "event store %s ready (retention %ss)",
            store.backend,
            server_config.dedup.retention_seconds,
        )

        yield


app = FastAPI(
    title="eventguard",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)
app.include_router(admin_events.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_event_service(request: Request) -> WebhookEventService:
    return request.app.state.event_service


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "eventguard",
        "version": app.version,
        "store": {
            "backend": settings.store.backend,
            "retention_seconds": settings.dedup.retention_seconds,
        },
    }


@app.get("/ping", tags=["meta"])
async def ping() -> dict[str, Any]:
    return {"status": "ok", "version": app.version}


@app.post("/webhooks/stripe", tags=["webhooks"])
async def stripe_webhook(
    request: Request,
    service: WebhookEventService = Depends(get_event_service),
) -> dict[str, Any]:
    raw_body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER, "")
    try:
        result = await service.ingest(raw_body, signature)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"invalid event: {exc.message}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Webhook Error: {exc}") from exc
    except InfrastructureError as exc:
        # Upstream retries on 5xx; nothing was recorded.
        raise HTTPException(status_code=503, detail="event store unavailable") from exc
    except EventProcessingError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {
        "received": True,
        "event_id": result.event_id,
        "event_type": result.event_type,
        "duplicate": result.duplicate,
    }
