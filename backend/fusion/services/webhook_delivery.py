# backend/fusion/services/webhook_delivery.py
"""
Signed outbound webhook calls.

Every POST carries ``X-Fusion-Signature`` (HMAC-SHA256 hex of the exact body
bytes, keyed with the webhook's signing secret) and ``X-Fusion-Event``.
Each attempt appends one WebhookDelivery row; a transport failure is
recorded with ``response_status=0``.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from fusion.core.config import settings
from fusion.core.log_utils import sanitize_for_log
from fusion.core.security import serialize_payload, sign_payload
from fusion.crud.credential_store import CredentialStore
from fusion.db.models.webhook import DEFAULT_RETRY_POLICY, Webhook, WebhookDelivery

logger = logging.getLogger(__name__)

TEST_EVENT_TYPE = "webhook.test"
TEST_EVENT_MESSAGE = "This is a test webhook from Fusion"
SIGNATURE_HEADER = "X-Fusion-Signature"
EVENT_HEADER = "X-Fusion-Event"


@dataclass(frozen=True)
class DeliveryAttempt:
    response_status: int
    response_time_ms: int
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return 200 <= self.response_status < 300

    @property
    def transport_failed(self) -> bool:
        return self.error is not None


@dataclass
class DeliveryOutcome:
    """Result of delivering one event to one webhook, across all attempts."""

    webhook_id: uuid.UUID
    attempts: list[DeliveryAttempt] = field(default_factory=list)

    @property
    def final(self) -> DeliveryAttempt | None:
        return self.attempts[-1] if self.attempts else None

    @property
    def succeeded(self) -> bool:
        return self.final is not None and self.final.succeeded


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    moment = moment or datetime.now(UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_event_payload(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"event": event_type, "timestamp": utc_timestamp(), "data": data}


def build_test_payload(webhook_id: uuid.UUID) -> dict[str, Any]:
    return build_event_payload(
        TEST_EVENT_TYPE,
        {"message": TEST_EVENT_MESSAGE, "webhook_id": str(webhook_id)},
    )


def backoff_delay(retry_policy: dict[str, Any] | None, attempt_number: int) -> float:
    """Seconds to wait after failed attempt ``attempt_number`` (1-based)."""
    policy = retry_policy or DEFAULT_RETRY_POLICY
    base = settings.WEBHOOK_BACKOFF_BASE_SECONDS
    strategy = policy.get("backoff", DEFAULT_RETRY_POLICY["backoff"])
    if strategy == "exponential":
        delay = base * (2 ** (attempt_number - 1))
    elif strategy == "linear":
        delay = base * attempt_number
    else:
        delay = base
    return min(delay, settings.WEBHOOK_BACKOFF_MAX_SECONDS)


def max_attempts(retry_policy: dict[str, Any] | None) -> int:
    policy = retry_policy or DEFAULT_RETRY_POLICY
    return max(1, int(policy.get("max_attempts", DEFAULT_RETRY_POLICY["max_attempts"])))


async def post_signed(
    client: httpx.AsyncClient,
    webhook: Webhook,
    event_type: str,
    payload: dict[str, Any],
) -> DeliveryAttempt:
    """One POST to the webhook endpoint. Never raises for network errors."""
    body = serialize_payload(payload)
    headers = {
        "Content-Type": "application/json",
        SIGNATURE_HEADER: sign_payload(body, webhook.signing_secret),
        EVENT_HEADER: event_type,
        "User-Agent": settings.WEBHOOK_USER_AGENT,
    }

    started = time.perf_counter()
    try:
        response = await client.post(
            webhook.endpoint_url,
            content=body,
            headers=headers,
            timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
        )
    except httpx.HTTPError as e:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.warning(
            "Webhook %s delivery to %s failed: %s",
            webhook.id,
            sanitize_for_log(webhook.endpoint_url, 200),
            e,
        )
        return DeliveryAttempt(
            response_status=0,
            response_time_ms=elapsed_ms,
            error=str(e) or type(e).__name__,
        )

    elapsed_ms = int((time.perf_counter() - started) * 1000)
    return DeliveryAttempt(response_status=response.status_code, response_time_ms=elapsed_ms)


async def _record_attempt(
    store: CredentialStore,
    webhook: Webhook,
    event_type: str,
    payload: dict[str, Any],
    attempt: DeliveryAttempt,
    attempt_number: int,
    next_retry_at: datetime | None = None,
) -> None:
    await store.insert_delivery(
        WebhookDelivery(
            webhook_id=webhook.id,
            event_type=event_type,
            payload=payload,
            response_status=attempt.response_status,
            response_time_ms=attempt.response_time_ms,
            attempt_number=attempt_number,
            error_message=attempt.error,
            delivered_at=datetime.now(UTC),
            next_retry_at=next_retry_at,
        )
    )


async def send_test_event(
    store: CredentialStore,
    client: httpx.AsyncClient,
    webhook: Webhook,
) -> DeliveryAttempt:
    """Single attempt, no retry, regardless of the webhook's retry policy."""
    payload = build_test_payload(webhook.id)
    attempt = await post_signed(client, webhook, TEST_EVENT_TYPE, payload)

    await _record_attempt(store, webhook, TEST_EVENT_TYPE, payload, attempt, attempt_number=1)
    await store.record_delivery_outcome(webhook.id, attempt.succeeded, datetime.now(UTC))

    logger.info(
        "Test webhook %s: status=%s time=%sms",
        webhook.id,
        attempt.response_status,
        attempt.response_time_ms,
    )
    return attempt


async def deliver_event(
    store: CredentialStore,
    client: httpx.AsyncClient,
    webhook: Webhook,
    event_type: str,
    payload: dict[str, Any],
) -> DeliveryOutcome:
    """
    Deliver one event to one webhook, retrying per its ``retry_policy``.

    Counters move once, on the final outcome.
    """
    outcome = DeliveryOutcome(webhook_id=webhook.id)
    attempts_allowed = max_attempts(webhook.retry_policy)

    for attempt_number in range(1, attempts_allowed + 1):
        attempt = await post_signed(client, webhook, event_type, payload)
        outcome.attempts.append(attempt)

        retry_pending = not attempt.succeeded and attempt_number < attempts_allowed
        delay = backoff_delay(webhook.retry_policy, attempt_number) if retry_pending else 0.0
        next_retry_at = datetime.now(UTC) + timedelta(seconds=delay) if retry_pending else None

        await _record_attempt(
            store, webhook, event_type, payload, attempt, attempt_number, next_retry_at
        )
        if not retry_pending:
            break

        logger.info(
            "Webhook %s attempt %s/%s failed (status=%s); retrying in %.1fs",
            webhook.id,
            attempt_number,
            attempts_allowed,
            attempt.response_status,
            delay,
        )
        await asyncio.sleep(delay)

    await store.record_delivery_outcome(webhook.id, outcome.succeeded, datetime.now(UTC))
    return outcome
