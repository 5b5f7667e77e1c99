# backend/fusion/services/webhook_service.py
"""
Webhook lifecycle: create, update, delete, list, test and event dispatch.

The signing secret is generated once, returned once by ``create_webhook``,
and never changed afterwards. Updates are restricted to a fixed set of
fields.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import AnyUrl, TypeAdapter, ValidationError

from fusion.core.log_utils import sanitize_for_log
from fusion.core.security import generate_signing_secret
from fusion.crud.credential_store import CredentialStore
from fusion.db.models.webhook import DEFAULT_RETRY_POLICY, Webhook, WebhookDelivery
from fusion.exceptions import DeliveryError, InvalidInputError, NotFoundError
from fusion.schemas.webhook import RetryPolicy, WebhookUpdate
from fusion.services.webhook_delivery import (
    DeliveryAttempt,
    DeliveryOutcome,
    build_event_payload,
    deliver_event,
    send_test_event,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "endpoint_url",
        "endpointUrl",
        "event_types",
        "eventTypes",
        "is_active",
        "isActive",
        "retry_policy",
        "retryPolicy",
    }
)


_URL_ADAPTER = TypeAdapter(AnyUrl)


@dataclass(frozen=True)
class CreatedWebhook:
    webhook: Webhook
    signing_secret: str


@dataclass(frozen=True)
class DispatchReport:
    payload: dict[str, Any]
    outcomes: list[DeliveryOutcome]


def validate_endpoint_url(endpoint_url: str) -> str:
    """
    Require an absolute URL whose scheme is exactly ``https``.

    Returns the trimmed input. Anything the WHATWG URL parser rejects, such as
    a space in the host, is malformed.
    """
    candidate = endpoint_url.strip()
    try:
        url = _URL_ADAPTER.validate_python(candidate)
    except ValidationError as e:
        raise InvalidInputError("Invalid URL format") from e
    if not url.host:
        raise InvalidInputError("Invalid URL format")
    if url.scheme != "https":
        raise InvalidInputError("Webhook URL must use HTTPS")
    return candidate


def validate_event_types(event_types: list[str]) -> list[str]:
    cleaned = [event_type.strip() for event_type in event_types if event_type.strip()]
    if not cleaned:
        raise InvalidInputError("At least one event type is required")
    return list(dict.fromkeys(cleaned))


def _validation_fields(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in error.errors()
    ]


def resolve_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """
    Turn a raw ``updates`` object into column changes.

    Raises InvalidInputError naming any key outside the allowed set, and for
    values of the wrong shape.
    """
    if not updates:
        raise InvalidInputError("Webhook ID and updates are required")

    disallowed = sorted(key for key in updates if key not in UPDATABLE_FIELDS)
    if disallowed:
        raise InvalidInputError(f"Fields cannot be updated: {', '.join(disallowed)}")

    try:
        update = WebhookUpdate.model_validate(updates)
    except ValidationError as e:
        raise InvalidInputError("Invalid webhook updates", details=_validation_fields(e)) from e

    changes = update.model_dump(exclude_unset=True)
    null_fields = sorted(field for field, value in changes.items() if value is None)
    if null_fields:
        raise InvalidInputError(f"Fields cannot be null: {', '.join(null_fields)}")

    if update.retry_policy is not None:
        # Stored whole, with defaults filled in
        changes["retry_policy"] = update.retry_policy.model_dump()
    if "endpoint_url" in changes:
        changes["endpoint_url"] = validate_endpoint_url(changes["endpoint_url"])
    if "event_types" in changes:
        changes["event_types"] = validate_event_types(changes["event_types"])
    return changes


async def create_webhook(
    store: CredentialStore,
    organization_id: uuid.UUID,
    environment_id: uuid.UUID,
    endpoint_url: str,
    event_types: list[str],
    retry_policy: RetryPolicy | None = None,
    created_by: uuid.UUID | None = None,
) -> CreatedWebhook:
    url = validate_endpoint_url(endpoint_url)
    events = validate_event_types(event_types)

    environment = await store.get_environment(environment_id)
    if environment is None or environment.organization_id != organization_id:
        raise NotFoundError("Environment not found")

    signing_secret = generate_signing_secret()
    webhook = Webhook(
        organization_id=organization_id,
        environment_id=environment_id,
        endpoint_url=url,
        event_types=events,
        signing_secret=signing_secret,
        is_active=True,
        retry_policy=retry_policy.model_dump() if retry_policy else dict(DEFAULT_RETRY_POLICY),
        success_count=0,
        failure_count=0,
        created_by=created_by,
    )
    stored = await store.insert_webhook(webhook)

    logger.info(
        "Webhook %s created for organization %s -> %s",
        stored.id,
        organization_id,
        sanitize_for_log(url, 200),
    )
    return CreatedWebhook(webhook=stored, signing_secret=signing_secret)


async def update_webhook(
    store: CredentialStore,
    webhook_id: uuid.UUID,
    updates: dict[str, Any],
) -> Webhook:
    changes = resolve_updates(updates)
    updated = await store.update_webhook(webhook_id, changes)
    if updated is None:
        raise NotFoundError("Webhook not found")
    logger.info("Webhook %s updated: %s", webhook_id, ", ".join(sorted(changes)))
    return updated


async def delete_webhook(store: CredentialStore, webhook_id: uuid.UUID) -> None:
    """Hard delete. The delivery log goes with it."""
    if not await store.delete_webhook(webhook_id):
        raise NotFoundError("Webhook not found")
    logger.info("Webhook %s deleted", webhook_id)


async def list_webhooks(
    store: CredentialStore,
    organization_id: uuid.UUID,
    environment_id: uuid.UUID,
) -> list[Webhook]:
    return await store.list_webhooks(organization_id, environment_id)


async def list_deliveries(store: CredentialStore, webhook_id: uuid.UUID) -> list[WebhookDelivery]:
    if await store.get_webhook(webhook_id) is None:
        raise NotFoundError("Webhook not found")
    return await store.list_deliveries(webhook_id)


async def send_test_webhook(
    store: CredentialStore,
    client: httpx.AsyncClient,
    webhook_id: uuid.UUID,
) -> DeliveryAttempt:
    """
    Send the canonical test event once.

    A remote non-2xx status is returned to the caller as data; only a
    transport failure raises DeliveryError. Both are recorded and counted.
    """
    webhook = await store.get_webhook(webhook_id)
    if webhook is None:
        raise NotFoundError("Webhook not found")

    attempt = await send_test_event(store, client, webhook)
    if attempt.transport_failed:
        raise DeliveryError("Failed to deliver webhook", details=attempt.error)
    return attempt


async def dispatch_event(
    store: CredentialStore,
    client: httpx.AsyncClient,
    organization_id: uuid.UUID,
    environment_id: uuid.UUID,
    event_type: str,
    data: dict[str, Any],
) -> DispatchReport:
    """Deliver one event to every active subscribed webhook, one after another."""
    payload = build_event_payload(event_type, data)
    webhooks = await store.list_subscribed_webhooks(organization_id, environment_id, event_type)

    outcomes = []
    for webhook in webhooks:
        outcomes.append(await deliver_event(store, client, webhook, event_type, payload))

    delivered = sum(1 for outcome in outcomes if outcome.succeeded)
    logger.info(
        "Dispatched %s to %s webhook(s) in environment %s: %s delivered",
        sanitize_for_log(event_type, 100),
        len(outcomes),
        environment_id,
        delivered,
    )
    return DispatchReport(payload=payload, outcomes=outcomes)
