# backend/fusion/schemas/account.py
import uuid

from pydantic import ConfigDict, Field

from fusion.schemas.base import RequestModel


class ChangePasswordRequest(RequestModel):
    model_config = ConfigDict(str_strip_whitespace=False)

    user_id: uuid.UUID
    # Length policy is enforced by the service so the error names the minimum
    current_password: str = Field(..., min_length=1, max_length=1024)
    new_password: str = Field(..., min_length=1, max_length=1024)
