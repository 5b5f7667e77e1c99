# backend/fusion/api/routers/admin_auth.py
"""Admin console login by emailed code, and session validation."""

import logging

from fastapi import APIRouter, Request

from fusion.api.deps import EmailSenderDep, RequestContextDep, StoreDep
from fusion.core.config import settings
from fusion.core.rate_limit import limiter
from fusion.schemas.admin import (
    AdminLoginResponse,
    AdminProfile,
    AdminSessionStatus,
    SendAdminCodeRequest,
    ValidateAdminSessionRequest,
    VerifyAdminCodeRequest,
)
from fusion.schemas.common import SuccessMessageResponse
from fusion.services import admin_auth_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin - Login"])


@router.post(
    "/send-admin-code",
    response_model=SuccessMessageResponse,
    summary="Email a login code to an admin address",
)
@limiter.limit(settings.ADMIN_LOGIN_RATE_LIMIT)
async def send_admin_code(
    request: Request,  # noqa: ARG001 - Name 'request' required by rate limiter
    body: SendAdminCodeRequest,
    store: StoreDep,
    sender: EmailSenderDep,
) -> SuccessMessageResponse:
    await admin_auth_service.send_admin_code(store, body.email, sender=sender)
    return SuccessMessageResponse(message="Code sent")


@router.post(
    "/verify-admin-code",
    response_model=AdminLoginResponse,
    summary="Trade a login code for a session token",
)
@limiter.limit(settings.ADMIN_LOGIN_RATE_LIMIT)
async def verify_admin_code(
    request: Request,  # noqa: ARG001 - Name 'request' required by rate limiter
    body: VerifyAdminCodeRequest,
    store: StoreDep,
    context: RequestContextDep,
) -> AdminLoginResponse:
    login = await admin_auth_service.verify_admin_code(
        store, body.email, body.code, context=context
    )
    return AdminLoginResponse(
        token=login.token,
        admin=AdminProfile(**admin_auth_service.admin_profile(login.admin, login.role)),
        expires_at=login.expires_at,
    )


@router.post(
    "/validate-admin-session",
    response_model=AdminSessionStatus,
    summary="Check an admin session token",
)
async def validate_admin_session(
    body: ValidateAdminSessionRequest, store: StoreDep
) -> AdminSessionStatus:
    check = await admin_auth_service.validate_admin_session(store, body.token)
    if not check.valid or check.admin is None:
        return AdminSessionStatus(valid=False)
    return AdminSessionStatus(
        valid=True,
        admin=AdminProfile(**admin_auth_service.admin_profile(check.admin, check.role)),
        expires_at=check.expires_at,
    )
