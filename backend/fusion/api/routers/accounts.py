# backend/fusion/api/routers/accounts.py
from fastapi import APIRouter

from fusion.api.deps import StoreDep
from fusion.schemas.account import ChangePasswordRequest
from fusion.schemas.common import SuccessMessageResponse
from fusion.services import account_service

router = APIRouter(tags=["Client Accounts"])


@router.post(
    "/change-password",
    response_model=SuccessMessageResponse,
    summary="Change a client user's password",
)
async def change_password(body: ChangePasswordRequest, store: StoreDep) -> SuccessMessageResponse:
    await account_service.change_password(
        store,
        user_id=body.user_id,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    return SuccessMessageResponse(message="Password changed successfully")
