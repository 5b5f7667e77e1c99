# backend/fusion/api/routers/api_keys.py
"""API key lifecycle endpoints."""

import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Header, Query

from fusion.api.deps import RequestContextDep, StoreDep
from fusion.schemas.api_key import (
    ApiKeyIntrospectionResponse,
    ApiKeyListResponse,
    ApiKeySummary,
    ApiKeyView,
    CreateApiKeyRequest,
    CreateApiKeyResponse,
    ListApiKeysRequest,
    RevokeApiKeyRequest,
    RotateApiKeyRequest,
    RotateApiKeyResponse,
)
from fusion.schemas.common import MessageResponse
from fusion.services import api_key_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["API Keys"])


@router.post(
    "/create-api-key",
    response_model=CreateApiKeyResponse,
    summary="Issue a new API key",
)
async def create_api_key(body: CreateApiKeyRequest, store: StoreDep) -> CreateApiKeyResponse:
    """
    Issue a key for an environment. The full key appears in this response
    and nowhere else.
    """
    issued = await api_key_service.create_api_key(
        store,
        organization_id=body.organization_id,
        environment_id=body.environment_id,
        key_name=body.key_name,
        scopes=body.scopes,
        created_by=body.created_by,
    )
    return CreateApiKeyResponse(
        full_key=issued.full_key,
        api_key=ApiKeySummary.model_validate(issued.api_key),
    )


@router.post(
    "/rotate-api-key",
    response_model=RotateApiKeyResponse,
    summary="Revoke a key and issue its replacement",
)
async def rotate_api_key(body: RotateApiKeyRequest, store: StoreDep) -> RotateApiKeyResponse:
    issued = await api_key_service.rotate_api_key(store, body.key_id, body.organization_id)
    return RotateApiKeyResponse(
        new_key=issued.full_key,
        api_key=ApiKeySummary.model_validate(issued.api_key),
    )


@router.post("/revoke-api-key", response_model=MessageResponse, summary="Revoke an API key")
async def revoke_api_key(body: RevokeApiKeyRequest, store: StoreDep) -> MessageResponse:
    await api_key_service.revoke_api_key(
        store, body.key_id, body.organization_id, revoked_by=body.revoked_by
    )
    return MessageResponse(message="API key revoked successfully")


async def _list_api_keys(store: StoreDep, query: ListApiKeysRequest) -> ApiKeyListResponse:
    api_keys = await api_key_service.list_api_keys(
        store, query.organization_id, query.environment_id
    )
    return ApiKeyListResponse(
        api_keys=[ApiKeyView.model_validate(api_key) for api_key in api_keys],
        count=len(api_keys),
    )


@router.post("/get-api-keys", response_model=ApiKeyListResponse, summary="List API keys")
async def get_api_keys(body: ListApiKeysRequest, store: StoreDep) -> ApiKeyListResponse:
    return await _list_api_keys(store, body)


@router.get("/get-api-keys", response_model=ApiKeyListResponse, include_in_schema=False)
async def get_api_keys_query(
    store: StoreDep,
    organization_id: Annotated[uuid.UUID, Query(alias="organizationId")],
    environment_id: Annotated[uuid.UUID, Query(alias="environmentId")],
) -> ApiKeyListResponse:
    return await _list_api_keys(
        store,
        ListApiKeysRequest(organization_id=organization_id, environment_id=environment_id),
    )


@router.api_route(
    "/introspect-api-key",
    methods=["GET", "POST"],
    response_model=ApiKeyIntrospectionResponse,
    summary="Resolve the presented X-API-Key",
)
async def introspect_api_key(
    store: StoreDep,
    context: RequestContextDep,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> ApiKeyIntrospectionResponse:
    api_key = await api_key_service.authenticate_api_key(store, x_api_key, context.ip_address)
    return ApiKeyIntrospectionResponse(
        organization_id=api_key.organization_id,
        environment_id=api_key.environment_id,
        scopes=list(api_key.scopes),
        key_prefix=api_key.key_prefix,
        key_secret_partial=api_key.key_secret_partial,
    )
