# backend/fusion/services/api_key_service.py
"""
API key lifecycle: create, rotate, revoke, list and introspect.

The plaintext key is returned exactly once, by ``create_api_key`` or
``rotate_api_key``. Only its SHA-256 digest and last four characters are
persisted.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from fusion.core.config import settings
from fusion.core.log_utils import mask_secret
from fusion.core.security import (
    generate_api_key,
    hash_secret,
    key_prefix_for,
    secret_partial,
)
from fusion.crud.credential_store import CredentialStore
from fusion.db.models.api_key import ApiKey
from fusion.exceptions import (
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

VALID_SCOPES = ("verify", "audit", "extract_metadata", "webhook_manage")
ROTATED_NAME_SUFFIX = " (Rotated)"


@dataclass(frozen=True)
class IssuedApiKey:
    """A freshly stored key together with its one-time plaintext."""

    api_key: ApiKey
    full_key: str


def validate_scopes(scopes: Iterable[str]) -> list[str]:
    """Return the scopes in request order, or raise naming every unknown one."""
    requested = list(scopes)
    if not requested:
        raise InvalidInputError("At least one scope is required")
    invalid = [scope for scope in requested if scope not in VALID_SCOPES]
    if invalid:
        raise InvalidInputError(f"Invalid scopes: {', '.join(invalid)}")
    # Preserve order, drop duplicates
    return list(dict.fromkeys(requested))


async def create_api_key(
    store: CredentialStore,
    organization_id: uuid.UUID,
    environment_id: uuid.UUID,
    key_name: str,
    scopes: list[str],
    created_by: uuid.UUID | None = None,
) -> IssuedApiKey:
    valid_scopes = validate_scopes(scopes)

    environment = await store.get_environment(environment_id)
    if environment is None or environment.organization_id != organization_id:
        raise NotFoundError("Environment not found")

    prefix = key_prefix_for(environment.is_production)
    full_key = generate_api_key(prefix)
    api_key = ApiKey(
        organization_id=organization_id,
        environment_id=environment_id,
        key_name=key_name,
        key_prefix=prefix,
        key_hash=hash_secret(full_key),
        key_secret_partial=secret_partial(full_key),
        scopes=valid_scopes,
        created_by=created_by,
        is_active=True,
        rate_limit_per_minute=settings.API_KEY_RATE_LIMIT_PER_MINUTE,
        rate_limit_per_day=settings.API_KEY_RATE_LIMIT_PER_DAY,
    )
    stored = await store.insert_api_key(api_key)

    logger.info(
        "API key %s (%s) created for organization %s",
        stored.id,
        stored.preview,
        organization_id,
    )
    return IssuedApiKey(api_key=stored, full_key=full_key)


async def rotate_api_key(
    store: CredentialStore,
    key_id: uuid.UUID,
    organization_id: uuid.UUID,
) -> IssuedApiKey:
    """
    Replace a live key with a new one carrying the same scopes and limits.

    The old key is revoked and the replacement inserted atomically; if a
    concurrent revoke wins, nothing is written and InvalidStateError is raised.
    """
    old_key = await store.get_api_key(key_id, organization_id)
    if old_key is None:
        raise NotFoundError("API key not found")
    if old_key.revoked_at is not None:
        raise InvalidStateError("Cannot rotate a revoked key")

    full_key = generate_api_key(old_key.key_prefix)
    replacement = ApiKey(
        organization_id=old_key.organization_id,
        environment_id=old_key.environment_id,
        key_name=f"{old_key.key_name}{ROTATED_NAME_SUFFIX}",
        key_prefix=old_key.key_prefix,
        key_hash=hash_secret(full_key),
        key_secret_partial=secret_partial(full_key),
        scopes=list(old_key.scopes),
        created_by=old_key.created_by,
        is_active=True,
        rate_limit_per_minute=old_key.rate_limit_per_minute,
        rate_limit_per_day=old_key.rate_limit_per_day,
    )

    stored = await store.rotate_api_key(old_key, replacement, datetime.now(UTC))
    if stored is None:
        raise InvalidStateError("Cannot rotate a revoked key")

    logger.info("API key %s rotated; replacement is %s (%s)", key_id, stored.id, stored.preview)
    return IssuedApiKey(api_key=stored, full_key=full_key)


async def revoke_api_key(
    store: CredentialStore,
    key_id: uuid.UUID,
    organization_id: uuid.UUID,
    revoked_by: uuid.UUID,
) -> None:
    """Terminal transition. Revoking twice is an error, not a no-op."""
    existing = await store.get_api_key(key_id, organization_id)
    if existing is None:
        raise NotFoundError("API key not found")
    if existing.revoked_at is not None:
        raise InvalidStateError("API key is already revoked")

    revoked = await store.revoke_api_key(key_id, organization_id, revoked_by, datetime.now(UTC))
    if not revoked:
        raise InvalidStateError("API key is already revoked")

    logger.info("API key %s revoked by %s", key_id, revoked_by)


async def list_api_keys(
    store: CredentialStore,
    organization_id: uuid.UUID,
    environment_id: uuid.UUID,
) -> list[ApiKey]:
    return await store.list_api_keys(organization_id, environment_id)


async def authenticate_api_key(
    store: CredentialStore,
    presented_key: str | None,
    ip_address: str | None = None,
) -> ApiKey:
    """Resolve a presented plaintext key to its live row, or raise UnauthorizedError."""
    if not presented_key:
        raise UnauthorizedError("API key is required")

    api_key = await store.get_api_key_by_hash(hash_secret(presented_key))
    now = datetime.now(UTC)
    if api_key is None:
        logger.warning("Rejected unknown API key %s", mask_secret(presented_key))
        raise UnauthorizedError("Invalid API key")
    if not api_key.is_active or api_key.revoked_at is not None:
        raise UnauthorizedError("API key has been revoked")
    if api_key.expires_at is not None and api_key.expires_at <= now:
        raise UnauthorizedError("API key has expired")

    await store.record_api_key_use(api_key.id, now, ip_address)
    return api_key
