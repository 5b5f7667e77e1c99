# backend/fusion/services/mfa_service.py
"""
Admin TOTP enrollment.

Provides functions for:
- Generating TOTP secrets and enrollment QR codes
- Verifying TOTP codes with one step of clock drift either way
- Enabling and disabling TOTP on an admin account
"""

import base64
import io
import logging
import uuid
from dataclasses import dataclass

import pyotp
import qrcode

from fusion.core.config import settings
from fusion.core.log_utils import sanitize_for_log
from fusion.core.request_context import RequestContext
from fusion.crud.credential_store import CredentialStore
from fusion.exceptions import InvalidCodeError, NotFoundError
from fusion.services.audit_service import log_admin_action

logger = logging.getLogger(__name__)

AUDIT_RESOURCE_TYPE = "admin_user"


@dataclass(frozen=True)
class TotpEnrollment:
    secret: str
    qr_code: str
    uri: str


def generate_totp_secret() -> str:
    """Generate a new TOTP secret."""
    return pyotp.random_base32()


def get_totp_uri(secret: str, email: str) -> str:
    """Generate the TOTP provisioning URI for QR code."""
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=email, issuer_name=settings.TOTP_ISSUER)


def generate_qr_code_base64(uri: str) -> str:
    """Generate a QR code as base64 PNG for the given URI."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)

    return base64.b64encode(buffer.read()).decode("utf-8")


def verify_totp_code(secret: str, code: str) -> bool:
    """
    Verify a TOTP code against the secret.

    Allows for 1 window of tolerance (30 seconds before/after).
    """
    totp = pyotp.TOTP(secret)
    return totp.verify(code, valid_window=1)


def generate_totp(email: str) -> TotpEnrollment:
    """
    Start enrollment. Nothing is persisted until ``enable_totp`` succeeds.
    """
    secret = generate_totp_secret()
    uri = get_totp_uri(secret, email)
    qr_code = f"data:image/png;base64,{generate_qr_code_base64(uri)}"

    logger.info(f"TOTP enrollment started for {sanitize_for_log(email, 320)}")
    return TotpEnrollment(secret=secret, qr_code=qr_code, uri=uri)


async def enable_totp(
    store: CredentialStore,
    admin_id: uuid.UUID,
    email: str,
    secret: str,
    code: str,
    context: RequestContext | None = None,
) -> None:
    """
    Persist the secret once the admin proves their authenticator produces it.

    On a wrong code nothing is written.
    """
    try:
        code_ok = verify_totp_code(secret, code)
    except (TypeError, ValueError) as e:
        # Not valid base32
        raise InvalidCodeError() from e
    if not code_ok:
        logger.warning(f"Invalid TOTP code during enrollment for {sanitize_for_log(email, 320)}")
        raise InvalidCodeError()

    if not await store.set_admin_totp(admin_id, secret, enabled=True):
        raise NotFoundError("Admin not found")

    await log_admin_action(
        store,
        admin_id,
        "totp_enabled",
        resource_type=AUDIT_RESOURCE_TYPE,
        resource_id=admin_id,
        details={"email": email},
        context=context,
    )
    logger.info(f"TOTP enabled for admin {admin_id}")


async def disable_totp(
    store: CredentialStore,
    admin_id: uuid.UUID,
    email: str,
    context: RequestContext | None = None,
) -> None:
    """Clear the secret and the flag together. No code challenge is required."""
    if not await store.set_admin_totp(admin_id, None, enabled=False):
        raise NotFoundError("Admin not found")

    await log_admin_action(
        store,
        admin_id,
        "totp_disabled",
        resource_type=AUDIT_RESOURCE_TYPE,
        resource_id=admin_id,
        details={"email": email},
        context=context,
    )
    logger.info(f"TOTP disabled for admin {admin_id}")
