# backend/fusion/api/routers/organizations.py
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Query

from fusion.api.deps import StoreDep
from fusion.schemas.organization import (
    CreateOrganizationRequest,
    CreateOrganizationResponse,
    EnvironmentListResponse,
    EnvironmentView,
    ListEnvironmentsRequest,
    OrganizationSummary,
)
from fusion.services import organization_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Organizations"])


@router.post(
    "/create-organization",
    response_model=CreateOrganizationResponse,
    summary="Create an organization with sandbox and production environments",
)
async def create_organization(
    body: CreateOrganizationRequest, store: StoreDep
) -> CreateOrganizationResponse:
    organization = await organization_service.create_organization(
        store, user_id=body.user_id, name=body.name, slug=body.slug
    )
    return CreateOrganizationResponse(
        organization=OrganizationSummary.model_validate(organization)
    )


async def _list_environments(
    store: StoreDep, organization_id: uuid.UUID
) -> EnvironmentListResponse:
    environments = await organization_service.list_environments(store, organization_id)
    return EnvironmentListResponse(
        environments=[EnvironmentView.model_validate(env) for env in environments],
        count=len(environments),
    )


@router.post("/get-environments", response_model=EnvironmentListResponse)
async def get_environments(
    body: ListEnvironmentsRequest, store: StoreDep
) -> EnvironmentListResponse:
    return await _list_environments(store, body.organization_id)


@router.get("/get-environments", response_model=EnvironmentListResponse, include_in_schema=False)
async def get_environments_query(
    store: StoreDep,
    organization_id: Annotated[uuid.UUID, Query(alias="organizationId")],
) -> EnvironmentListResponse:
    return await _list_environments(store, organization_id)
