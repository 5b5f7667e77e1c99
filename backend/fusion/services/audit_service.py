# backend/fusion/services/audit_service.py
"""
Admin audit logging.

Provides:
- log_admin_action(): append one AdminAuditLog row per admin action
- Severity mapping
- Details allowlist, secret masking and size caps
"""

import json
import logging
import re
import uuid
from datetime import UTC, datetime
from typing import Any

from fusion.core.request_context import RequestContext
from fusion.core.security import action_hash
from fusion.crud.credential_store import CredentialStore
from fusion.db.models.admin import AdminAuditLog

logger = logging.getLogger(__name__)

# Maximum size for details JSON (32KB)
MAX_DETAILS_SIZE = 32 * 1024

# Allowlisted keys for details field (security: no secrets)
ALLOWED_DETAIL_KEYS = {
    "email",
    "role",
    "reason",
    "method",
    "ip",
    "count",
    "attempts",
    "status",
    "key_id",
    "scopes",
    "prefix",
    "webhook_id",
    "changed_fields",
    "first_login",
    "session_expires_at",
    "mfa_method",
}

SENSITIVE_PATTERNS = [
    re.compile(r".*token.*", re.IGNORECASE),
    re.compile(r".*secret.*", re.IGNORECASE),
    re.compile(r".*password.*", re.IGNORECASE),
    re.compile(r".*code$", re.IGNORECASE),
    re.compile(r".*api_key.*", re.IGNORECASE),
    re.compile(r".*session_id.*", re.IGNORECASE),
]

# Severity mapping for actions
SEVERITY_MAP = {
    ("admin_login", True): "info",
    ("admin_login", False): "warning",
    ("totp_enabled", True): "info",
    ("totp_enabled", False): "warning",
    ("totp_disabled", True): "critical",
}


def get_severity(action: str, success: bool) -> str:
    """Get severity level for an action based on success/failure."""
    return SEVERITY_MAP.get((action, success), "info")


def sanitize_details(details: dict[str, Any] | None) -> dict[str, Any] | None:
    """
    Sanitize details dict: allowlist keys, cap size, and mask secrets.

    Removes any keys not in ALLOWED_DETAIL_KEYS and truncates
    if the serialized JSON exceeds MAX_DETAILS_SIZE.
    """
    if not details:
        return None

    sanitized = {k: v for k, v in details.items() if k in ALLOWED_DETAIL_KEYS}

    for k, v in sanitized.items():
        if isinstance(v, str) and any(pattern.match(k) for pattern in SENSITIVE_PATTERNS):
            sanitized[k] = "[REDACTED]"

    if len(json.dumps(sanitized, default=str)) > MAX_DETAILS_SIZE:
        sanitized["_truncated"] = True
        while len(json.dumps(sanitized, default=str)) > MAX_DETAILS_SIZE:
            if len(sanitized) <= 1:
                break
            largest_key = max(
                (k for k in sanitized if k != "_truncated"),
                key=lambda k: len(str(sanitized[k])),
                default=None,
            )
            if largest_key is None:
                break
            del sanitized[largest_key]

    return sanitized if sanitized else None


def timestamp_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


async def log_admin_action(
    store: CredentialStore,
    admin_id: uuid.UUID | None,
    action: str,
    resource_type: str | None = None,
    resource_id: str | uuid.UUID | None = None,
    details: dict[str, Any] | None = None,
    context: RequestContext | None = None,
    success: bool = True,
) -> AdminAuditLog | None:
    """
    Append an audit entry for an admin action.

    A failure to write is logged and reported as None; it never undoes the
    action being audited.
    """
    ctx = context or RequestContext()
    now = datetime.now(UTC)
    entry = AdminAuditLog(
        admin_id=admin_id,
        action=action,
        severity=get_severity(action, success),
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id else None,
        action_hash=action_hash(str(admin_id or ""), timestamp_ms(now)),
        details=sanitize_details(details),
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
        timestamp=now,
    )

    try:
        await store.append_audit_log(entry)
    except Exception as e:
        logger.error(
            f"Failed to write audit entry {action} for admin {admin_id}: {e}", exc_info=True
        )
        return None

    logger.debug(f"Audit entry written: {action} by {admin_id}")
    return entry
