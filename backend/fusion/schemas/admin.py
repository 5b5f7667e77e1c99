# backend/fusion/schemas/admin.py
import uuid
from datetime import datetime

from pydantic import EmailStr, Field

from fusion.schemas.base import RequestModel, ResponseModel


class GenerateTotpRequest(RequestModel):
    admin_id: uuid.UUID
    email: EmailStr


class EnableTotpRequest(RequestModel):
    admin_id: uuid.UUID
    email: EmailStr
    secret: str = Field(..., min_length=16, max_length=64)
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class DisableTotpRequest(RequestModel):
    admin_id: uuid.UUID
    email: EmailStr


class GenerateTotpResponse(ResponseModel):
    success: bool = True
    secret: str
    qr_code: str = Field(..., alias="qrCode")


class SendAdminCodeRequest(RequestModel):
    email: EmailStr


class VerifyAdminCodeRequest(RequestModel):
    email: EmailStr
    code: str = Field(..., min_length=1, max_length=16)


class ValidateAdminSessionRequest(RequestModel):
    token: str = Field(..., min_length=1, max_length=128)


class AdminProfile(ResponseModel):
    id: uuid.UUID
    email: str
    role: str | None = None
    permissions: list[str] = Field(default_factory=list)
    totp_enabled: bool = False


class AdminLoginResponse(ResponseModel):
    token: str
    admin: AdminProfile
    expires_at: datetime = Field(..., alias="expiresAt")


class AdminSessionStatus(ResponseModel):
    valid: bool
    admin: AdminProfile | None = None
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
