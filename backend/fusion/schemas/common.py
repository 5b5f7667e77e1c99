# backend/fusion/schemas/common.py
from fusion.schemas.base import ResponseModel


class MessageResponse(ResponseModel):
    message: str


class SuccessResponse(ResponseModel):
    success: bool = True


class SuccessMessageResponse(SuccessResponse):
    message: str
