# backend/fusion/exceptions.py
"""Error taxonomy for the credential lifecycle.

Services raise these; the handlers in ``fusion.main`` turn them into
``{"error": ...}`` JSON bodies with the matching HTTP status.
"""

from typing import Any


class FusionError(Exception):
    """Base class for errors that map to a client-facing JSON response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidInputError(FusionError):
    """Missing or malformed request fields."""

    status_code = 400
    default_message = "Invalid input"


class NotFoundError(FusionError):
    """A referenced id does not resolve."""

    status_code = 404
    default_message = "Not found"


class InvalidStateError(FusionError):
    """The operation is not allowed in the entity's current lifecycle state."""

    status_code = 400
    default_message = "Operation not permitted in the current state"


class InvalidCodeError(FusionError):
    status_code = 400
    default_message = "Invalid verification code"


class ExpiredCodeError(FusionError):
    status_code = 400
    default_message = "Verification code expired. Please request a new one."


class UnauthorizedError(FusionError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(FusionError):
    status_code = 403
    default_message = "Forbidden"


class DeliveryError(FusionError):
    """An outbound call to a third party (webhook endpoint, email provider) failed."""

    status_code = 500
    default_message = "Delivery failed"


class InternalError(FusionError):
    status_code = 500
