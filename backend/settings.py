# Version History
# v1.0 - Environment-driven settings for VAPID identity, push delivery and the daily trigger.

from __future__ import annotations

import os
from dataclasses import dataclass

from vapid import VapidKeyPair


@dataclass(frozen=True)
class Settings:
    vapid_public_key: str
    vapid_private_key: str
    vapid_subject: str
    frontend_base_url: str
    push_ttl_seconds: int
    push_timeout_seconds: float
    push_max_workers: int
    daily_push_hour: int
    daily_push_minute: int
    timezone: str

    @property
    def vapid_key_pair(self) -> VapidKeyPair:
        return VapidKeyPair(
            public_key=self.vapid_public_key,
            private_key=self.vapid_private_key,
            subject=self.vapid_subject,
        )


def get_settings() -> Settings:
    public = os.getenv("VAPID_PUBLIC_KEY", "")
    private = os.getenv("VAPID_PRIVATE_KEY", "")
    subject = os.getenv("VAPID_SUBJECT", "mailto:hello@kindspread.app")
    frontend = os.getenv("FRONTEND_BASE_URL", "http://localhost:5173")

    if not public or not private:
        raise RuntimeError("VAPID_PUBLIC_KEY and VAPID_PRIVATE_KEY must be set.")

    return Settings(
        vapid_public_key=public.strip(),
        vapid_private_key=private,
        vapid_subject=subject,
        frontend_base_url=frontend.rstrip("/"),
        push_ttl_seconds=int(os.getenv("PUSH_TTL_SECONDS", "86400")),
        push_timeout_seconds=float(os.getenv("PUSH_TIMEOUT_SECONDS", "10")),
        push_max_workers=int(os.getenv("PUSH_MAX_WORKERS", "16")),
        daily_push_hour=int(os.getenv("DAILY_PUSH_HOUR", "9")),
        daily_push_minute=int(os.getenv("DAILY_PUSH_MINUTE", "0")),
        timezone=os.getenv("TIMEZONE", "UTC"),
    )
