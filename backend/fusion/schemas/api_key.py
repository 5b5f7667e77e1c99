# backend/fusion/schemas/api_key.py
import uuid
from datetime import datetime

from pydantic import Field

from fusion.schemas.base import RequestModel, ResponseModel


class CreateApiKeyRequest(RequestModel):
    organization_id: uuid.UUID
    environment_id: uuid.UUID
    key_name: str = Field(..., min_length=1, max_length=255)
    scopes: list[str]
    created_by: uuid.UUID | None = None


class RotateApiKeyRequest(RequestModel):
    key_id: uuid.UUID
    organization_id: uuid.UUID


class RevokeApiKeyRequest(RequestModel):
    key_id: uuid.UUID
    organization_id: uuid.UUID
    revoked_by: uuid.UUID


class ListApiKeysRequest(RequestModel):
    organization_id: uuid.UUID
    environment_id: uuid.UUID


class ApiKeySummary(ResponseModel):
    """Non-secret fields returned alongside a freshly issued key."""

    id: uuid.UUID
    key_name: str
    key_prefix: str
    key_secret_partial: str
    scopes: list[str]
    created_at: datetime | None = None


class ApiKeyView(ApiKeySummary):
    """Safe listing view. Never carries the hash or the full key."""

    last_used_at: datetime | None = None
    last_used_ip: str | None = None
    rate_limit_per_minute: int
    rate_limit_per_day: int
    is_active: bool
    expires_at: datetime | None = None
    revoked_at: datetime | None = None


class CreateApiKeyResponse(ResponseModel):
    message: str = "API key created successfully"
    full_key: str = Field(..., alias="fullKey")
    api_key: ApiKeySummary = Field(..., alias="apiKey")


class RotateApiKeyResponse(ResponseModel):
    message: str = "API key rotated successfully"
    new_key: str = Field(..., alias="newKey")
    api_key: ApiKeySummary = Field(..., alias="apiKey")


class ApiKeyListResponse(ResponseModel):
    api_keys: list[ApiKeyView] = Field(..., alias="apiKeys")
    count: int


class ApiKeyIntrospectionResponse(ResponseModel):
    organization_id: uuid.UUID = Field(..., alias="organizationId")
    environment_id: uuid.UUID = Field(..., alias="environmentId")
    scopes: list[str]
    key_prefix: str = Field(..., alias="keyPrefix")
    key_secret_partial: str = Field(..., alias="keySecretPartial")
