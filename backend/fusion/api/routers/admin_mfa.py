# backend/fusion/api/routers/admin_mfa.py
"""
Admin TOTP endpoints.

Provides endpoints for:
- Starting TOTP enrollment (secret + QR code)
- Confirming enrollment with a first code
- Turning TOTP off
"""

import logging

from fastapi import APIRouter

from fusion.api.deps import RequestContextDep, StoreDep
from fusion.schemas.admin import (
    DisableTotpRequest,
    EnableTotpRequest,
    GenerateTotpRequest,
    GenerateTotpResponse,
)
from fusion.schemas.common import SuccessResponse
from fusion.services import mfa_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin - TOTP"])


@router.post(
    "/generate-totp",
    response_model=GenerateTotpResponse,
    summary="Start TOTP enrollment",
)
async def generate_totp(body: GenerateTotpRequest) -> GenerateTotpResponse:
    """
    Returns a fresh secret and a QR code for authenticator apps.
    Nothing is stored until ``enable-totp`` confirms a code.
    """
    enrollment = mfa_service.generate_totp(body.email)
    return GenerateTotpResponse(secret=enrollment.secret, qr_code=enrollment.qr_code)


@router.post("/enable-totp", response_model=SuccessResponse, summary="Confirm and enable TOTP")
async def enable_totp(
    body: EnableTotpRequest,
    store: StoreDep,
    context: RequestContextDep,
) -> SuccessResponse:
    await mfa_service.enable_totp(
        store,
        admin_id=body.admin_id,
        email=body.email,
        secret=body.secret,
        code=body.code,
        context=context,
    )
    return SuccessResponse()


@router.post("/disable-totp", response_model=SuccessResponse, summary="Disable TOTP")
async def disable_totp(
    body: DisableTotpRequest,
    store: StoreDep,
    context: RequestContextDep,
) -> SuccessResponse:
    await mfa_service.disable_totp(store, admin_id=body.admin_id, email=body.email, context=context)
    return SuccessResponse()
