# backend/tests/unit/test_webhook_delivery.py
import hashlib
import hmac
import json
import re
from datetime import UTC, datetime

import httpx
import pytest
from fakes import InMemoryCredentialStore, WebhookReceiver

from fusion.schemas.webhook import RetryPolicy
from fusion.services import webhook_delivery, webhook_service

ENDPOINT = "https://hooks.example.com/fusion"
TIMESTAMP_RE = re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z")


async def _webhook(store: InMemoryCredentialStore, retry_policy: RetryPolicy | None = None):
    org, sandbox, _ = store.add_organization()
    created = await webhook_service.create_webhook(
        store, org.id, sandbox.id, ENDPOINT, ["verification.completed"], retry_policy
    )
    return created.webhook


def test_utc_timestamp_has_millis_and_z_suffix():
    moment = datetime(2025, 3, 1, 12, 30, 45, 123456, tzinfo=UTC)
    assert webhook_delivery.utc_timestamp(moment) == "2025-03-01T12:30:45.123Z"
    assert TIMESTAMP_RE.fullmatch(webhook_delivery.utc_timestamp())


def test_test_payload_shape():
    payload = webhook_delivery.build_test_payload("wh-1")
    assert payload["event"] == "webhook.test"
    assert payload["data"] == {
        "message": "This is a test webhook from Fusion",
        "webhook_id": "wh-1",
    }
    assert TIMESTAMP_RE.fullmatch(payload["timestamp"])


@pytest.mark.parametrize(
    ("policy", "attempt", "expected"),
    [
        ({"backoff": "exponential"}, 1, 1.0),
        ({"backoff": "exponential"}, 3, 4.0),
        ({"backoff": "exponential"}, 10, 60.0),
        ({"backoff": "linear"}, 3, 3.0),
        ({"backoff": "fixed"}, 5, 1.0),
        (None, 2, 2.0),
    ],
)
def test_backoff_delay(policy, attempt, expected):
    assert webhook_delivery.backoff_delay(policy, attempt) == expected


def test_max_attempts_defaults_and_floor():
    assert webhook_delivery.max_attempts(None) == 3
    assert webhook_delivery.max_attempts({"max_attempts": 5}) == 5
    assert webhook_delivery.max_attempts({"max_attempts": 0}) == 1


@pytest.mark.asyncio
async def test_post_signed_signs_exact_body(
    store: InMemoryCredentialStore, receiver: WebhookReceiver
):
    webhook = await _webhook(store)
    payload = webhook_delivery.build_event_payload("verification.completed", {"id": 1})

    async with receiver.client() as client:
        attempt = await webhook_delivery.post_signed(
            client, webhook, "verification.completed", payload
        )

    assert attempt.succeeded
    request = receiver.requests[0]
    expected = hmac.new(
        webhook.signing_secret.encode(), request.content, hashlib.sha256
    ).hexdigest()
    assert request.headers["X-Fusion-Signature"] == expected
    assert request.headers["X-Fusion-Event"] == "verification.completed"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["User-Agent"] == "Fusion-Webhooks/1.0"
    assert json.loads(request.content) == payload


@pytest.mark.asyncio
async def test_post_signed_transport_error_returns_status_zero(
    store: InMemoryCredentialStore, receiver: WebhookReceiver
):
    webhook = await _webhook(store)
    receiver.respond_with(httpx.ConnectError)

    async with receiver.client() as client:
        attempt = await webhook_delivery.post_signed(client, webhook, "x", {"event": "x"})

    assert attempt.response_status == 0
    assert attempt.transport_failed
    assert not attempt.succeeded
    assert "connection refused" in attempt.error


@pytest.mark.asyncio
async def test_send_test_event_is_single_attempt(
    store: InMemoryCredentialStore, receiver: WebhookReceiver
):
    webhook = await _webhook(store, RetryPolicy(max_attempts=5))
    receiver.respond_with(500)

    async with receiver.client() as client:
        attempt = await webhook_delivery.send_test_event(store, client, webhook)

    assert attempt.response_status == 500
    assert len(receiver.requests) == 1
    deliveries = store.deliveries_for(webhook.id)
    assert len(deliveries) == 1
    assert deliveries[0].event_type == "webhook.test"
    assert deliveries[0].attempt_number == 1
    assert webhook.failure_count == 1
    assert webhook.success_count == 0
    assert webhook.last_triggered_at is not None


@pytest.mark.asyncio
async def test_deliver_event_retries_until_success(
    store: InMemoryCredentialStore, receiver: WebhookReceiver, no_backoff: list[float]
):
    webhook = await _webhook(store, RetryPolicy(max_attempts=3, backoff="exponential"))
    receiver.respond_with(500, 502, 200)
    payload = webhook_delivery.build_event_payload("verification.completed", {})

    async with receiver.client() as client:
        outcome = await webhook_delivery.deliver_event(
            store, client, webhook, "verification.completed", payload
        )

    assert outcome.succeeded
    assert [a.response_status for a in outcome.attempts] == [500, 502, 200]
    assert no_backoff == [1.0, 2.0]

    deliveries = sorted(store.deliveries_for(webhook.id), key=lambda d: d.attempt_number)
    assert [d.attempt_number for d in deliveries] == [1, 2, 3]
    assert deliveries[0].next_retry_at is not None
    assert deliveries[1].next_retry_at is not None
    assert deliveries[2].next_retry_at is None

    # Counters reflect the final outcome only
    assert webhook.success_count == 1
    assert webhook.failure_count == 0


@pytest.mark.asyncio
async def test_deliver_event_gives_up_after_max_attempts(
    store: InMemoryCredentialStore, receiver: WebhookReceiver, no_backoff: list[float]
):
    webhook = await _webhook(store, RetryPolicy(max_attempts=2, backoff="fixed"))
    receiver.respond_with(httpx.ConnectTimeout)

    async with receiver.client() as client:
        outcome = await webhook_delivery.deliver_event(
            store, client, webhook, "verification.completed", {"event": "x"}
        )

    assert not outcome.succeeded
    assert len(outcome.attempts) == 2
    assert no_backoff == [1.0]
    assert all(d.response_status == 0 for d in store.deliveries_for(webhook.id))
    assert all(d.error_message for d in store.deliveries_for(webhook.id))
    assert webhook.failure_count == 1
    assert webhook.success_count == 0


@pytest.mark.asyncio
async def test_deliver_event_success_on_first_attempt_does_not_sleep(
    store: InMemoryCredentialStore, receiver: WebhookReceiver, no_backoff: list[float]
):
    webhook = await _webhook(store)

    async with receiver.client() as client:
        outcome = await webhook_delivery.deliver_event(store, client, webhook, "e", {"event": "e"})

    assert outcome.succeeded
    assert len(outcome.attempts) == 1
    assert no_backoff == []
