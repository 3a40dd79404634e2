# Version History
# v1.0 - APScheduler cron job that pushes the daily kindness mission.

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from db import SqliteSubscriptionRepository
from missions import mission_for_day
from push import Notification, dispatch_notification

logger = logging.getLogger(__name__)


def build_daily_notification(day) -> Notification:
    mission, _ = mission_for_day(day)
    return Notification(
        title="Your Daily Kindness Mission",
        body=mission,
        icon="/icons/icon-192.svg",
        badge="/icons/icon-192.svg",
        tag="daily-mission",
        data={"url": "/"},
    )


def run_daily_mission_job(settings, repository=None) -> dict:
    now = datetime.now(ZoneInfo(settings.timezone))
    logger.info("Daily mission push triggered at %s", now.isoformat())

    return dispatch_notification(
        build_daily_notification(now.date()),
        repository or SqliteSubscriptionRepository(),
        settings.vapid_key_pair,
        ttl=settings.push_ttl_seconds,
        timeout=settings.push_timeout_seconds,
        max_workers=settings.push_max_workers,
    )


def build_scheduler(settings) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.timezone)
    scheduler.add_job(
        run_daily_mission_job,
        trigger=CronTrigger(
            hour=settings.daily_push_hour,
            minute=settings.daily_push_minute,
            timezone=settings.timezone,
        ),
        kwargs={"settings": settings},
        id="daily-mission-push",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
