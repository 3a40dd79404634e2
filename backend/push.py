# Version History
# v1.0 - Web Push fan-out: per-recipient encryption, VAPID signing, delivery and
#        soft-deactivation of subscriptions the push service reports as gone.
# v1.1 - Deactivated count reflects rows actually retired; mark_sent is part of the repository contract.

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Iterable, Protocol, Sequence

import requests

from crypto_provider import CryptoProvider, default_provider
from db import Subscription
from encryption import encrypt
from errors import MalformedKeyMaterial, RepositoryUnavailable, SigningError, TransportFailure
from vapid import VapidKeyPair, build_auth_header

logger = logging.getLogger(__name__)

GONE_STATUSES = frozenset({404, 410})
DEFAULT_TTL_SECONDS = 86400
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_WORKERS = 16


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    GONE = "gone"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass(frozen=True)
class Notification:
    title: str
    body: str
    icon: str | None = None
    badge: str | None = None
    tag: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> bytes:
        return json.dumps(asdict(self), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass(frozen=True)
class DeliveryResult:
    endpoint: str
    outcome: DeliveryOutcome
    status_code: int | None = None
    error: str | None = None


class SubscriptionRepository(Protocol):
    def list_active(self) -> list[Subscription]:
        ...

    def deactivate(self, endpoint: str) -> bool:
        ...

    def mark_sent(self, endpoints: Iterable[str]) -> None:
        ...


def classify_status(status_code: int) -> DeliveryOutcome:
    if 200 <= status_code < 300:
        return DeliveryOutcome.DELIVERED
    if status_code in GONE_STATUSES:
        return DeliveryOutcome.GONE
    return DeliveryOutcome.TRANSIENT_FAILURE


def short_endpoint(endpoint: str) -> str:
    return endpoint if len(endpoint) <= 50 else endpoint[:50] + "..."


def post_record(
    endpoint: str,
    record: bytes,
    auth_headers: dict[str, str],
    ttl: int,
    timeout: float,
) -> requests.Response:
    headers = {
        **auth_headers,
        "Content-Type": "application/octet-stream",
        "Content-Encoding": "aes128gcm",
        "Content-Length": str(len(record)),
        "TTL": str(ttl),
    }
    try:
        return requests.post(endpoint, data=record, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise TransportFailure(f"{type(exc).__name__}: {exc}") from exc


def deliver(
    subscription: Subscription,
    payload: bytes,
    key_pair: VapidKeyPair,
    ttl: int = DEFAULT_TTL_SECONDS,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    provider: CryptoProvider = default_provider,
) -> DeliveryResult:
    endpoint = subscription.endpoint
    try:
        record = encrypt(payload, subscription.client_public_key, subscription.auth_secret, provider=provider)
        auth_headers = build_auth_header(endpoint, key_pair.subject, key_pair, provider=provider)
        response = post_record(endpoint, record, auth_headers, ttl=ttl, timeout=timeout)
    except MalformedKeyMaterial as exc:
        # Left active on purpose: only a gone status from the push service retires a row.
        logger.warning("Skipping subscription with malformed keys endpoint=%s error=%s", short_endpoint(endpoint), exc)
        return DeliveryResult(endpoint=endpoint, outcome=DeliveryOutcome.TRANSIENT_FAILURE, error=str(exc))
    except SigningError as exc:
        logger.error("VAPID signing failed endpoint=%s error=%s", short_endpoint(endpoint), exc)
        return DeliveryResult(endpoint=endpoint, outcome=DeliveryOutcome.TRANSIENT_FAILURE, error=str(exc))
    except TransportFailure as exc:
        logger.warning("Push transport failed endpoint=%s error=%s", short_endpoint(endpoint), exc)
        return DeliveryResult(endpoint=endpoint, outcome=DeliveryOutcome.TRANSIENT_FAILURE, error=str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.error("Push delivery failed endpoint=%s error=%s", short_endpoint(endpoint), exc, exc_info=True)
        return DeliveryResult(endpoint=endpoint, outcome=DeliveryOutcome.TRANSIENT_FAILURE, error=str(exc))

    outcome = classify_status(response.status_code)
    if outcome is DeliveryOutcome.DELIVERED:
        return DeliveryResult(endpoint=endpoint, outcome=outcome, status_code=response.status_code)

    logger.info("Push service rejected message endpoint=%s status=%s", short_endpoint(endpoint), response.status_code)
    return DeliveryResult(
        endpoint=endpoint,
        outcome=outcome,
        status_code=response.status_code,
        error=(response.text or "")[:200],
    )


def send_push_batch(
    subscriptions: Sequence[Subscription],
    payload: bytes,
    key_pair: VapidKeyPair,
    ttl: int = DEFAULT_TTL_SECONDS,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    max_workers: int = DEFAULT_MAX_WORKERS,
    provider: CryptoProvider = default_provider,
) -> list[DeliveryResult]:
    if not subscriptions:
        return []

    workers = max(1, min(max_workers, len(subscriptions)))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webpush") as pool:
        futures = [
            pool.submit(deliver, item, payload, key_pair, ttl=ttl, timeout=timeout, provider=provider)
            for item in subscriptions
        ]
        return [future.result() for future in futures]


def deactivate_gone(repository: SubscriptionRepository, endpoints: Iterable[str]) -> int:
    deactivated = 0
    for endpoint in dict.fromkeys(endpoints):
        try:
            if repository.deactivate(endpoint):
                deactivated += 1
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed deactivating gone subscription endpoint=%s error=%s", short_endpoint(endpoint), exc)
    return deactivated


def summarize(results: Sequence[DeliveryResult], deactivated: int) -> dict:
    counts = {outcome: 0 for outcome in DeliveryOutcome}
    for result in results:
        counts[result.outcome] += 1

    return {
        "total": len(results),
        "delivered": counts[DeliveryOutcome.DELIVERED],
        "gone": counts[DeliveryOutcome.GONE],
        "failed": counts[DeliveryOutcome.TRANSIENT_FAILURE],
        "deactivated": deactivated,
        "results": list(results),
    }


def dispatch_notification(
    notification: Notification,
    repository: SubscriptionRepository,
    key_pair: VapidKeyPair,
    ttl: int = DEFAULT_TTL_SECONDS,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    max_workers: int = DEFAULT_MAX_WORKERS,
    provider: CryptoProvider = default_provider,
) -> dict:
    payload = notification.to_payload()

    try:
        subscriptions = repository.list_active()
    except RepositoryUnavailable:
        raise
    except Exception as exc:
        raise RepositoryUnavailable(f"Unable to list active subscriptions: {exc}") from exc

    if not subscriptions:
        logger.info("No active subscriptions found")
        return summarize([], 0)

    logger.info("Sending notifications to %d subscribers", len(subscriptions))
    results = send_push_batch(
        subscriptions,
        payload,
        key_pair,
        ttl=ttl,
        timeout=timeout,
        max_workers=max_workers,
        provider=provider,
    )

    gone = [result.endpoint for result in results if result.outcome is DeliveryOutcome.GONE]
    deactivated = 0
    if gone:
        logger.info("Marking %d expired subscriptions as inactive", len(gone))
        deactivated = deactivate_gone(repository, gone)

    delivered = [result.endpoint for result in results if result.outcome is DeliveryOutcome.DELIVERED]
    if delivered:
        # Bookkeeping only; never fails the cycle.
        try:
            repository.mark_sent(delivered)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed recording last_sent_at error=%s", exc)

    summary = summarize(results, deactivated)
    logger.info(
        "Notifications sent: %d delivered, %d gone, %d failed",
        summary["delivered"],
        summary["gone"],
        summary["failed"],
    )
    return summary
