# backend/fusion/api/routers/webhooks.py
"""Webhook management, test delivery and event dispatch endpoints."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Query

from fusion.api.deps import StoreDep, WebhookClientDep
from fusion.schemas.common import MessageResponse
from fusion.schemas.webhook import (
    CreateWebhookRequest,
    CreateWebhookResponse,
    DispatchResult,
    DispatchWebhookEventRequest,
    DispatchWebhookEventResponse,
    ListWebhooksRequest,
    UpdateWebhookRequest,
    WebhookDeliveryListResponse,
    WebhookDeliveryView,
    WebhookIdRequest,
    WebhookListResponse,
    WebhookSummary,
    WebhookTestResponse,
    WebhookView,
)
from fusion.services import webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post(
    "/create-webhook",
    response_model=CreateWebhookResponse,
    summary="Register a webhook endpoint",
)
async def create_webhook(body: CreateWebhookRequest, store: StoreDep) -> CreateWebhookResponse:
    """The signing secret is returned here once and cannot be read back later."""
    created = await webhook_service.create_webhook(
        store,
        organization_id=body.organization_id,
        environment_id=body.environment_id,
        endpoint_url=body.endpoint_url,
        event_types=body.event_types,
        retry_policy=body.retry_policy,
        created_by=body.created_by,
    )
    return CreateWebhookResponse(
        webhook=WebhookSummary.model_validate(created.webhook),
        signing_secret=created.signing_secret,
    )


@router.post("/update-webhook", response_model=MessageResponse, summary="Patch a webhook")
async def update_webhook(body: UpdateWebhookRequest, store: StoreDep) -> MessageResponse:
    await webhook_service.update_webhook(store, body.webhook_id, body.updates)
    return MessageResponse(message="Webhook updated successfully")


@router.post("/delete-webhook", response_model=MessageResponse, summary="Delete a webhook")
async def delete_webhook(body: WebhookIdRequest, store: StoreDep) -> MessageResponse:
    await webhook_service.delete_webhook(store, body.webhook_id)
    return MessageResponse(message="Webhook deleted successfully")


@router.post(
    "/test-webhook",
    response_model=WebhookTestResponse,
    summary="Send a signed test event",
)
async def test_webhook(
    body: WebhookIdRequest,
    store: StoreDep,
    client: WebhookClientDep,
) -> WebhookTestResponse:
    """
    A non-2xx answer from the endpoint is reported with ``success: false``;
    an unreachable endpoint is a 500.
    """
    attempt = await webhook_service.send_test_webhook(store, client, body.webhook_id)
    return WebhookTestResponse(
        response_status=attempt.response_status,
        response_time_ms=attempt.response_time_ms,
        success=attempt.succeeded,
    )


async def _list_webhooks(store: StoreDep, query: ListWebhooksRequest) -> WebhookListResponse:
    webhooks = await webhook_service.list_webhooks(
        store, query.organization_id, query.environment_id
    )
    return WebhookListResponse(
        webhooks=[WebhookView.model_validate(webhook) for webhook in webhooks],
        count=len(webhooks),
    )


@router.post("/get-webhooks", response_model=WebhookListResponse, summary="List webhooks")
async def get_webhooks(body: ListWebhooksRequest, store: StoreDep) -> WebhookListResponse:
    return await _list_webhooks(store, body)


@router.get("/get-webhooks", response_model=WebhookListResponse, include_in_schema=False)
async def get_webhooks_query(
    store: StoreDep,
    organization_id: Annotated[uuid.UUID, Query(alias="organizationId")],
    environment_id: Annotated[uuid.UUID, Query(alias="environmentId")],
) -> WebhookListResponse:
    return await _list_webhooks(
        store,
        ListWebhooksRequest(organization_id=organization_id, environment_id=environment_id),
    )


async def _list_deliveries(store: StoreDep, webhook_id: uuid.UUID) -> WebhookDeliveryListResponse:
    deliveries = await webhook_service.list_deliveries(store, webhook_id)
    return WebhookDeliveryListResponse(
        deliveries=[WebhookDeliveryView.model_validate(delivery) for delivery in deliveries],
        count=len(deliveries),
    )


@router.post(
    "/get-webhook-deliveries",
    response_model=WebhookDeliveryListResponse,
    summary="Last 50 delivery attempts, newest first",
)
async def get_webhook_deliveries(
    body: WebhookIdRequest, store: StoreDep
) -> WebhookDeliveryListResponse:
    return await _list_deliveries(store, body.webhook_id)


@router.get(
    "/get-webhook-deliveries",
    response_model=WebhookDeliveryListResponse,
    include_in_schema=False,
)
async def get_webhook_deliveries_query(
    store: StoreDep,
    webhook_id: Annotated[uuid.UUID, Query(alias="webhookId")],
) -> WebhookDeliveryListResponse:
    return await _list_deliveries(store, webhook_id)


@router.post(
    "/dispatch-webhook-event",
    response_model=DispatchWebhookEventResponse,
    summary="Deliver an event to every subscribed webhook",
)
async def dispatch_webhook_event(
    body: DispatchWebhookEventRequest,
    store: StoreDep,
    client: WebhookClientDep,
) -> DispatchWebhookEventResponse:
    report = await webhook_service.dispatch_event(
        store,
        client,
        organization_id=body.organization_id,
        environment_id=body.environment_id,
        event_type=body.event_type,
        data=body.data,
    )
    results = [
        DispatchResult(
            webhook_id=outcome.webhook_id,
            success=outcome.succeeded,
            attempts=len(outcome.attempts),
            response_status=outcome.final.response_status if outcome.final else 0,
        )
        for outcome in report.outcomes
    ]
    delivered = sum(1 for result in results if result.success)
    return DispatchWebhookEventResponse(
        event=report.payload["event"],
        timestamp=report.payload["timestamp"],
        delivered=delivered,
        failed=len(results) - delivered,
        results=results,
    )
