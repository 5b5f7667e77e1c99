# backend/fusion/schemas/base.py
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RequestModel(BaseModel):
    """
    Base for request bodies.

    Bodies arrive in camelCase (``organizationId``); snake_case names are
    accepted too. Unknown keys are rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


class ResponseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
