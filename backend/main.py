# Version History
# v1.0 - FastAPI backend with push subscriptions, VAPID key exposure, daily mission
#        scheduler wiring and a development-only test send.
# v1.1 - Mission completions API; today's mission follows the scheduler time zone.

from __future__ import annotations

import logging
import os
from datetime import datetime
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from db import (
    SqliteSubscriptionRepository,
    deactivate_subscription,
    has_completion_today,
    init_db,
    insert_completion,
    list_recent_completions,
    upsert_subscription,
)
from missions import mission_for_day
from push import DeliveryOutcome, Notification, dispatch_notification, short_endpoint
from scheduler import build_scheduler
from settings import get_settings
from vapid import load_private_key

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEV_HOSTS = {"localhost", "127.0.0.1"}
TEST_PUSH_TTL_SECONDS = 60
COMPLETIONS_DEFAULT_LIMIT = 100
COMPLETIONS_MAX_LIMIT = 500
COMPLETIONS_DEFAULT_HOURS = 24

settings = get_settings()
app = FastAPI(title="kindspread-backend")

raw_origins = os.getenv("CORS_ORIGINS", "*")
allow_origins = [item.strip() for item in raw_origins.split(",") if item.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

scheduler = None


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class SubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)
    keys: SubscriptionKeys


class UnsubscribeRequest(BaseModel):
    endpoint: str = Field(..., min_length=1)


class CompletionRequest(BaseModel):
    mission_text: str = Field(..., min_length=1)
    latitude: float
    longitude: float
    city: str | None = None
    country: str | None = None
    anonymous_id: str | None = None


@app.on_event("startup")
def on_startup() -> None:
    global scheduler
    init_db()
    # Fail fast on unusable key material instead of failing every recipient later.
    load_private_key(settings.vapid_private_key)
    scheduler = build_scheduler(settings)
    scheduler.start()
    logger.info("Daily mission push scheduled at %02d:%02d %s", settings.daily_push_hour, settings.daily_push_minute, settings.timezone)


@app.on_event("shutdown")
def on_shutdown() -> None:
    if scheduler:
        scheduler.shutdown(wait=False)


@app.get("/health")
def health() -> dict:
    return {"ok": True}


@app.get("/vapid-public-key")
def vapid_public_key() -> dict:
    return {"publicKey": settings.vapid_public_key}


@app.get("/mission/today")
def mission_today() -> dict:
    # Same calendar day the scheduler uses, not the host's local date.
    today = datetime.now(ZoneInfo(settings.timezone)).date()
    mission, index = mission_for_day(today)
    return {"date": today.isoformat(), "mission": mission, "index": index}


@app.post("/push/subscribe")
def subscribe(payload: SubscribeRequest) -> dict:
    upsert_subscription(payload.endpoint, payload.keys.p256dh, payload.keys.auth)
    return {"success": True, "message": "Subscription saved"}


@app.delete("/push/subscribe")
def unsubscribe(payload: UnsubscribeRequest) -> dict:
    # Soft delete: the row stays so a later re-subscribe can revive it.
    deactivate_subscription(payload.endpoint)
    return {"success": True, "message": "Subscription removed"}


@app.post("/push/test")
def send_test_push(request: Request) -> dict:
    if request.url.hostname not in DEV_HOSTS:
        raise HTTPException(status_code=403, detail="Test endpoint only available in development")

    notification = Notification(
        title="Test Notification",
        body="This is a test push notification from KindSpread!",
        icon="/icons/icon-192.svg",
        badge="/icons/icon-192.svg",
        tag="test-notification",
        data={"url": "/"},
    )
    summary = dispatch_notification(
        notification,
        SqliteSubscriptionRepository(),
        settings.vapid_key_pair,
        ttl=TEST_PUSH_TTL_SECONDS,
        timeout=settings.push_timeout_seconds,
        max_workers=settings.push_max_workers,
    )
    if summary["total"] == 0:
        raise HTTPException(status_code=404, detail="No active subscriptions found. Enable notifications first!")

    return {
        "message": f"Sent test notification to {summary['total']} subscriber(s)",
        "delivered": summary["delivered"],
        "gone": summary["gone"],
        "failed": summary["failed"],
        "results": [
            {
                "endpoint": short_endpoint(result.endpoint),
                "success": result.outcome is DeliveryOutcome.DELIVERED,
                "outcome": result.outcome.value,
                "status": result.status_code,
                "error": result.error,
            }
            for result in summary["results"]
        ],
    }


@app.get("/completions")
def get_completions(limit: int = COMPLETIONS_DEFAULT_LIMIT, hours: int = COMPLETIONS_DEFAULT_HOURS) -> dict:
    limit = max(0, min(limit, COMPLETIONS_MAX_LIMIT))
    completions = list_recent_completions(hours=hours, limit=limit)
    return {"completions": completions, "count": len(completions)}


@app.post("/completions")
def post_completion(payload: CompletionRequest) -> dict:
    if not (-90 <= payload.latitude <= 90) or not (-180 <= payload.longitude <= 180):
        raise HTTPException(status_code=400, detail="Invalid coordinates")

    if payload.anonymous_id and has_completion_today(payload.anonymous_id):
        raise HTTPException(status_code=409, detail="Already completed a mission today")

    completion_id = insert_completion(
        mission_text=payload.mission_text,
        latitude=payload.latitude,
        longitude=payload.longitude,
        city=payload.city or None,
        country=payload.country or None,
        anonymous_id=payload.anonymous_id or None,
    )
    return {"success": True, "id": completion_id, "message": "Mission completion saved!"}
