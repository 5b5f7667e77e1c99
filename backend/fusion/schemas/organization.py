# backend/fusion/schemas/organization.py
import uuid
from datetime import datetime

from pydantic import Field

from fusion.schemas.base import RequestModel, ResponseModel


class CreateOrganizationRequest(RequestModel):
    user_id: uuid.UUID
    name: str = Field(..., min_length=1, max_length=200)
    slug: str | None = Field(default=None, max_length=200)


class ListEnvironmentsRequest(RequestModel):
    organization_id: uuid.UUID


class OrganizationSummary(ResponseModel):
    id: uuid.UUID
    name: str
    slug: str


class CreateOrganizationResponse(ResponseModel):
    success: bool = True
    organization: OrganizationSummary


class EnvironmentView(ResponseModel):
    id: uuid.UUID
    organization_id: uuid.UUID
    name: str
    display_name: str | None = None
    description: str | None = None
    is_production: bool
    created_at: datetime | None = None


class EnvironmentListResponse(ResponseModel):
    environments: list[EnvironmentView]
    count: int
