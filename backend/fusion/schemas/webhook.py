# backend/fusion/schemas/webhook.py
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from fusion.schemas.base import RequestModel, ResponseModel


class RetryPolicy(RequestModel):
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff: Literal["exponential", "linear", "fixed"] = "exponential"


class CreateWebhookRequest(RequestModel):
    organization_id: uuid.UUID
    environment_id: uuid.UUID
    endpoint_url: str = Field(..., min_length=1, max_length=2048)
    event_types: list[str] = Field(..., min_length=1)
    retry_policy: RetryPolicy | None = None
    created_by: uuid.UUID | None = None


class WebhookUpdate(RequestModel):
    """The only fields ``update-webhook`` may touch."""

    endpoint_url: str | None = Field(default=None, min_length=1, max_length=2048)
    event_types: list[str] | None = Field(default=None, min_length=1)
    is_active: bool | None = None
    retry_policy: RetryPolicy | None = None


class UpdateWebhookRequest(RequestModel):
    webhook_id: uuid.UUID
    updates: dict[str, Any]


class WebhookIdRequest(RequestModel):
    webhook_id: uuid.UUID


class ListWebhooksRequest(RequestModel):
    organization_id: uuid.UUID
    environment_id: uuid.UUID


class DispatchWebhookEventRequest(RequestModel):
    organization_id: uuid.UUID
    environment_id: uuid.UUID
    event_type: str = Field(..., min_length=1, max_length=100)
    data: dict[str, Any] = Field(default_factory=dict)


class WebhookSummary(ResponseModel):
    id: uuid.UUID
    endpoint_url: str
    event_types: list[str]
    created_at: datetime | None = None


class WebhookView(WebhookSummary):
    organization_id: uuid.UUID
    environment_id: uuid.UUID
    is_active: bool
    retry_policy: dict[str, Any]
    success_count: int
    failure_count: int
    last_triggered_at: datetime | None = None
    created_by: uuid.UUID | None = None
    updated_at: datetime | None = None


class CreateWebhookResponse(ResponseModel):
    message: str = "Webhook created successfully"
    webhook: WebhookSummary
    signing_secret: str = Field(..., alias="signingSecret")


class WebhookListResponse(ResponseModel):
    webhooks: list[WebhookView]
    count: int


class WebhookTestResponse(ResponseModel):
    message: str = "Test webhook sent"
    response_status: int
    response_time_ms: int
    success: bool


class WebhookDeliveryView(ResponseModel):
    id: uuid.UUID
    event_type: str
    response_status: int
    response_time_ms: int
    attempt_number: int
    error_message: str | None = None
    delivered_at: datetime | None = None
    next_retry_at: datetime | None = None


class WebhookDeliveryListResponse(ResponseModel):
    deliveries: list[WebhookDeliveryView]
    count: int


class DispatchResult(ResponseModel):
    webhook_id: uuid.UUID
    success: bool
    attempts: int
    response_status: int


class DispatchWebhookEventResponse(ResponseModel):
    event: str
    timestamp: str
    delivered: int
    failed: int
    results: list[DispatchResult]
