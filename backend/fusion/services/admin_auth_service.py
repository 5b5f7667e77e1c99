# backend/fusion/services/admin_auth_service.py
"""
Passwordless admin console login.

An allow-listed address requests a six-digit code by email, then trades it
for a session token. Only one live code exists per email; a code is consumed
by the first successful verification.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from fusion.core.config import settings
from fusion.core.log_utils import sanitize_for_log
from fusion.core.request_context import RequestContext
from fusion.core.security import compare_digest, generate_login_code, generate_session_token
from fusion.crud.credential_store import CredentialStore
from fusion.db.models.admin import AdminRole, AdminSession, AdminUser
from fusion.exceptions import (
    DeliveryError,
    ExpiredCodeError,
    ForbiddenError,
    InvalidCodeError,
)
from fusion.services.audit_service import log_admin_action
from fusion.services.email_service import EmailSender, send_admin_code_email, send_email

logger = logging.getLogger(__name__)

# name -> (description, permissions)
DEFAULT_ROLES: dict[str, tuple[str, list[str]]] = {
    "super_admin": ("Full access to every console capability", ["*"]),
    "security_admin": (
        "Security operations and compliance",
        [
            "read_audit_log",
            "key_management",
            "security_incidents",
            "compliance",
            "read_analytics",
        ],
    ),
    "ops_admin": (
        "Day-to-day client and verification operations",
        [
            "read_audit_log",
            "provenance_management",
            "client_management",
            "verification_control",
            "read_analytics",
        ],
    ),
    "read_only": ("Read-only console access", ["read_audit_log", "read_analytics"]),
}


@dataclass(frozen=True)
class AdminLogin:
    token: str
    admin: AdminUser
    role: AdminRole | None
    expires_at: datetime


@dataclass(frozen=True)
class AdminSessionCheck:
    valid: bool
    admin: AdminUser | None = None
    role: AdminRole | None = None
    expires_at: datetime | None = None


def require_admin_email(email: str) -> str:
    """Normalize ``email`` and reject anything outside the admin domain."""
    normalized = email.strip().lower()
    if not normalized.endswith(settings.admin_email_suffix):
        logger.warning(f"Admin login refused for {sanitize_for_log(normalized, 320)}")
        raise ForbiddenError("Unauthorized email domain")
    return normalized


def admin_profile(admin: AdminUser, role: AdminRole | None) -> dict[str, Any]:
    return {
        "id": admin.id,
        "email": admin.email,
        "role": role.name if role else None,
        "permissions": list(role.permissions) if role else [],
        "totp_enabled": admin.totp_enabled,
    }


async def ensure_default_roles(store: CredentialStore) -> None:
    """Seed the role taxonomy the first time anyone logs in."""
    if await store.count_roles() > 0:
        return
    await store.create_roles(
        [
            AdminRole(name=name, description=description, permissions=list(permissions))
            for name, (description, permissions) in DEFAULT_ROLES.items()
        ]
    )
    logger.info("Seeded default admin roles: %s", ", ".join(DEFAULT_ROLES))


async def send_admin_code(
    store: CredentialStore,
    email: str,
    sender: EmailSender = send_email,
) -> None:
    email = require_admin_email(email)
    code = generate_login_code()
    expires_at = datetime.now(UTC) + timedelta(minutes=settings.ADMIN_CODE_TTL_MINUTES)

    # Any earlier code for this address stops working here
    await store.replace_verification_code(email, code, expires_at)

    if not await send_admin_code_email(email, code, sender):
        raise DeliveryError("Failed to send verification code")
    logger.info(f"Verification code sent to {sanitize_for_log(email, 320)}")


async def _get_or_create_admin(store: CredentialStore, email: str) -> tuple[AdminUser, bool]:
    admin = await store.get_admin_by_email(email)
    if admin is not None:
        return admin, False

    default_role = await store.get_role_by_name(settings.ADMIN_DEFAULT_ROLE)
    admin = await store.create_admin(
        AdminUser(
            email=email,
            role_id=default_role.id if default_role else None,
            totp_enabled=False,
            is_active=True,
        )
    )
    logger.info(f"Created admin account {admin.id} for {sanitize_for_log(email, 320)}")
    return admin, True


async def verify_admin_code(
    store: CredentialStore,
    email: str,
    code: str,
    context: RequestContext | None = None,
) -> AdminLogin:
    ctx = context or RequestContext()
    email = require_admin_email(email)

    stored = await store.get_verification_code(email)
    if stored is None:
        raise InvalidCodeError("No verification code found. Please request a new one.")

    now = datetime.now(UTC)
    if stored.is_expired(now):
        await store.delete_verification_codes(email)
        raise ExpiredCodeError()

    if not compare_digest(stored.code, code.strip()):
        raise InvalidCodeError()
    # A concurrent verification may have consumed it first
    if not await store.consume_verification_code(email, stored.code):
        raise InvalidCodeError()

    await ensure_default_roles(store)
    admin, first_login = await _get_or_create_admin(store, email)
    if not admin.is_active:
        raise ForbiddenError("Admin account is disabled")

    await store.record_admin_login(admin.id, now, ctx.ip_address)

    expires_at = now + timedelta(hours=settings.ADMIN_SESSION_TTL_HOURS)
    token = generate_session_token()
    await store.create_admin_session(
        AdminSession(
            admin_id=admin.id,
            session_token=token,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            expires_at=expires_at,
        )
    )

    role = await store.get_role(admin.role_id) if admin.role_id else None
    await log_admin_action(
        store,
        admin.id,
        "admin_login",
        resource_type="admin_session",
        resource_id=admin.id,
        details={
            "email": email,
            "first_login": first_login,
            "role": role.name if role else None,
        },
        context=ctx,
    )
    logger.info(f"Admin login successful for {sanitize_for_log(email, 320)}")
    return AdminLogin(token=token, admin=admin, role=role, expires_at=expires_at)


async def validate_admin_session(store: CredentialStore, token: str) -> AdminSessionCheck:
    admin_session = await store.get_admin_session(token)
    if admin_session is None:
        return AdminSessionCheck(valid=False)
    if admin_session.expires_at <= datetime.now(UTC):
        return AdminSessionCheck(valid=False)

    admin = await store.get_admin(admin_session.admin_id)
    if admin is None or not admin.is_active:
        return AdminSessionCheck(valid=False)

    role = await store.get_role(admin.role_id) if admin.role_id else None
    return AdminSessionCheck(
        valid=True, admin=admin, role=role, expires_at=admin_session.expires_at
    )
