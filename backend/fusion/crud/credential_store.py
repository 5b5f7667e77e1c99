# backend/fusion/crud/credential_store.py
"""
Persistence boundary for the credential lifecycle.

Services depend on the ``CredentialStore`` protocol only. The SQLAlchemy
implementation below is wired in through ``fusion.api.deps``; tests swap in
an in-memory one.

State transitions that must not race are expressed as conditional writes:
revocation only matches rows whose ``revoked_at`` is still NULL, rotation
performs that revoke and the insert of the replacement in one transaction,
and login codes are consumed by a delete that reports whether it matched.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fusion.db.models.admin import (
    AdminAuditLog,
    AdminRole,
    AdminSession,
    AdminUser,
    AdminVerificationCode,
)
from fusion.db.models.api_key import ApiKey
from fusion.db.models.client_user import ClientUser
from fusion.db.models.organization import Environment, Organization, OrganizationMember
from fusion.db.models.webhook import Webhook, WebhookDelivery

logger = logging.getLogger(__name__)

DELIVERY_LOG_LIMIT = 50


class CredentialStore(Protocol):
    # --- Organizations & accounts ---
    async def get_environment(self, environment_id: uuid.UUID) -> Environment | None: ...

    async def list_environments(self, organization_id: uuid.UUID) -> list[Environment]: ...

    async def slug_exists(self, slug: str) -> bool: ...

    async def create_organization(
        self,
        organization: Organization,
        owner_id: uuid.UUID,
        environments: list[Environment],
    ) -> Organization: ...

    async def get_client_user(self, user_id: uuid.UUID) -> ClientUser | None: ...

    async def update_client_password(self, user_id: uuid.UUID, password_hash: str) -> bool: ...

    # --- API keys ---
    async def insert_api_key(self, api_key: ApiKey) -> ApiKey: ...

    async def get_api_key(
        self, key_id: uuid.UUID, organization_id: uuid.UUID
    ) -> ApiKey | None: ...

    async def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None: ...

    async def list_api_keys(
        self, organization_id: uuid.UUID, environment_id: uuid.UUID
    ) -> list[ApiKey]: ...

    async def revoke_api_key(
        self,
        key_id: uuid.UUID,
        organization_id: uuid.UUID,
        revoked_by: uuid.UUID | None,
        revoked_at: datetime,
    ) -> bool: ...

    async def rotate_api_key(
        self, old_key: ApiKey, replacement: ApiKey, revoked_at: datetime
    ) -> ApiKey | None: ...

    async def record_api_key_use(
        self, key_id: uuid.UUID, used_at: datetime, ip_address: str | None
    ) -> None: ...

    # --- Webhooks ---
    async def insert_webhook(self, webhook: Webhook) -> Webhook: ...

    async def get_webhook(self, webhook_id: uuid.UUID) -> Webhook | None: ...

    async def list_webhooks(
        self, organization_id: uuid.UUID, environment_id: uuid.UUID
    ) -> list[Webhook]: ...

    async def list_subscribed_webhooks(
        self, organization_id: uuid.UUID, environment_id: uuid.UUID, event_type: str
    ) -> list[Webhook]: ...

    async def update_webhook(
        self, webhook_id: uuid.UUID, changes: dict[str, Any]
    ) -> Webhook | None: ...

    async def delete_webhook(self, webhook_id: uuid.UUID) -> bool: ...

    async def insert_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery: ...

    async def record_delivery_outcome(
        self, webhook_id: uuid.UUID, succeeded: bool, triggered_at: datetime
    ) -> None: ...

    async def list_deliveries(
        self, webhook_id: uuid.UUID, limit: int = DELIVERY_LOG_LIMIT
    ) -> list[WebhookDelivery]: ...

    # --- Admin accounts ---
    async def get_admin(self, admin_id: uuid.UUID) -> AdminUser | None: ...

    async def get_admin_by_email(self, email: str) -> AdminUser | None: ...

    async def create_admin(self, admin: AdminUser) -> AdminUser: ...

    async def set_admin_totp(
        self, admin_id: uuid.UUID, secret: str | None, enabled: bool
    ) -> bool: ...

    async def record_admin_login(
        self, admin_id: uuid.UUID, logged_in_at: datetime, ip_address: str | None
    ) -> None: ...

    async def count_roles(self) -> int: ...

    async def create_roles(self, roles: list[AdminRole]) -> None: ...

    async def get_role(self, role_id: uuid.UUID) -> AdminRole | None: ...

    async def get_role_by_name(self, name: str) -> AdminRole | None: ...

    # --- Admin login codes & sessions ---
    async def replace_verification_code(
        self, email: str, code: str, expires_at: datetime
    ) -> None: ...

    async def get_verification_code(self, email: str) -> AdminVerificationCode | None: ...

    async def delete_verification_codes(self, email: str) -> None: ...

    async def consume_verification_code(self, email: str, code: str) -> bool: ...

    async def create_admin_session(self, admin_session: AdminSession) -> AdminSession: ...

    async def get_admin_session(self, session_token: str) -> AdminSession | None: ...

    # --- Audit ---
    async def append_audit_log(self, entry: AdminAuditLog) -> None: ...


class SqlCredentialStore:
    """``CredentialStore`` backed by an async SQLAlchemy session.

    Every mutating method commits before returning.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _add_and_commit(self, obj: Any) -> Any:
        self.session.add(obj)
        await self.session.commit()
        await self.session.refresh(obj)
        return obj

    # --- Organizations & accounts ---

    async def get_environment(self, environment_id: uuid.UUID) -> Environment | None:
        return await self.session.get(Environment, environment_id)

    async def list_environments(self, organization_id: uuid.UUID) -> list[Environment]:
        result = await self.session.execute(
            select(Environment)
            .where(Environment.organization_id == organization_id)
            .order_by(Environment.is_production, Environment.created_at)
        )
        return list(result.scalars().all())

    async def slug_exists(self, slug: str) -> bool:
        result = await self.session.execute(
            select(Organization.id).where(Organization.slug == slug).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create_organization(
        self,
        organization: Organization,
        owner_id: uuid.UUID,
        environments: list[Environment],
    ) -> Organization:
        if organization.id is None:
            organization.id = uuid.uuid4()
        self.session.add(organization)
        self.session.add(
            OrganizationMember(
                organization_id=organization.id,
                user_id=owner_id,
                role="owner",
                invited_by=owner_id,
            )
        )
        for environment in environments:
            environment.organization_id = organization.id
            self.session.add(environment)
        await self.session.commit()
        await self.session.refresh(organization)
        return organization

    async def get_client_user(self, user_id: uuid.UUID) -> ClientUser | None:
        return await self.session.get(ClientUser, user_id)

    async def update_client_password(self, user_id: uuid.UUID, password_hash: str) -> bool:
        result = await self.session.execute(
            update(ClientUser)
            .where(ClientUser.id == user_id)
            .values(password_hash=password_hash, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount > 0

    # --- API keys ---

    async def insert_api_key(self, api_key: ApiKey) -> ApiKey:
        return await self._add_and_commit(api_key)

    async def get_api_key(self, key_id: uuid.UUID, organization_id: uuid.UUID) -> ApiKey | None:
        result = await self.session.execute(
            select(ApiKey).where(ApiKey.id == key_id, ApiKey.organization_id == organization_id)
        )
        return result.scalar_one_or_none()

    async def get_api_key_by_hash(self, key_hash: str) -> ApiKey | None:
        result = await self.session.execute(select(ApiKey).where(ApiKey.key_hash == key_hash))
        return result.scalar_one_or_none()

    async def list_api_keys(
        self, organization_id: uuid.UUID, environment_id: uuid.UUID
    ) -> list[ApiKey]:
        result = await self.session.execute(
            select(ApiKey)
            .where(
                ApiKey.organization_id == organization_id,
                ApiKey.environment_id == environment_id,
            )
            .order_by(ApiKey.created_at.desc())
        )
        return list(result.scalars().all())

    def _conditional_revoke(
        self,
        key_id: uuid.UUID,
        organization_id: uuid.UUID,
        revoked_by: uuid.UUID | None,
        revoked_at: datetime,
    ):
        return (
            update(ApiKey)
            .where(
                ApiKey.id == key_id,
                ApiKey.organization_id == organization_id,
                ApiKey.revoked_at.is_(None),
            )
            .values(is_active=False, revoked_at=revoked_at, revoked_by=revoked_by)
            .execution_options(synchronize_session=False)
        )

    async def revoke_api_key(
        self,
        key_id: uuid.UUID,
        organization_id: uuid.UUID,
        revoked_by: uuid.UUID | None,
        revoked_at: datetime,
    ) -> bool:
        result = await self.session.execute(
            self._conditional_revoke(key_id, organization_id, revoked_by, revoked_at)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def rotate_api_key(
        self, old_key: ApiKey, replacement: ApiKey, revoked_at: datetime
    ) -> ApiKey | None:
        result = await self.session.execute(
            self._conditional_revoke(old_key.id, old_key.organization_id, None, revoked_at)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            logger.info("Rotation of API key %s lost the race to a concurrent revoke.", old_key.id)
            return None
        return await self._add_and_commit(replacement)

    async def record_api_key_use(
        self, key_id: uuid.UUID, used_at: datetime, ip_address: str | None
    ) -> None:
        await self.session.execute(
            update(ApiKey)
            .where(ApiKey.id == key_id)
            .values(last_used_at=used_at, last_used_ip=ip_address)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    # --- Webhooks ---

    async def insert_webhook(self, webhook: Webhook) -> Webhook:
        return await self._add_and_commit(webhook)

    async def get_webhook(self, webhook_id: uuid.UUID) -> Webhook | None:
        return await self.session.get(Webhook, webhook_id)

    async def list_webhooks(
        self, organization_id: uuid.UUID, environment_id: uuid.UUID
    ) -> list[Webhook]:
        result = await self.session.execute(
            select(Webhook)
            .where(
                Webhook.organization_id == organization_id,
                Webhook.environment_id == environment_id,
            )
            .order_by(Webhook.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_subscribed_webhooks(
        self, organization_id: uuid.UUID, environment_id: uuid.UUID, event_type: str
    ) -> list[Webhook]:
        result = await self.session.execute(
            select(Webhook).where(
                Webhook.organization_id == organization_id,
                Webhook.environment_id == environment_id,
                Webhook.is_active.is_(True),
                Webhook.event_types.contains([event_type]),
            )
        )
        return list(result.scalars().all())

    async def update_webhook(
        self, webhook_id: uuid.UUID, changes: dict[str, Any]
    ) -> Webhook | None:
        webhook = await self.session.get(Webhook, webhook_id)
        if webhook is None:
            return None
        for field, value in changes.items():
            setattr(webhook, field, value)
        return await self._add_and_commit(webhook)

    async def delete_webhook(self, webhook_id: uuid.UUID) -> bool:
        result = await self.session.execute(delete(Webhook).where(Webhook.id == webhook_id))
        await self.session.commit()
        return result.rowcount > 0

    async def insert_delivery(self, delivery: WebhookDelivery) -> WebhookDelivery:
        return await self._add_and_commit(delivery)

    async def record_delivery_outcome(
        self, webhook_id: uuid.UUID, succeeded: bool, triggered_at: datetime
    ) -> None:
        counter = (
            {"success_count": Webhook.success_count + 1}
            if succeeded
            else {"failure_count": Webhook.failure_count + 1}
        )
        await self.session.execute(
            update(Webhook)
            .where(Webhook.id == webhook_id)
            .values(last_triggered_at=triggered_at, **counter)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def list_deliveries(
        self, webhook_id: uuid.UUID, limit: int = DELIVERY_LOG_LIMIT
    ) -> list[WebhookDelivery]:
        result = await self.session.execute(
            select(WebhookDelivery)
            .where(WebhookDelivery.webhook_id == webhook_id)
            .order_by(WebhookDelivery.delivered_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    # --- Admin accounts ---

    async def get_admin(self, admin_id: uuid.UUID) -> AdminUser | None:
        return await self.session.get(AdminUser, admin_id)

    async def get_admin_by_email(self, email: str) -> AdminUser | None:
        result = await self.session.execute(select(AdminUser).where(AdminUser.email == email))
        return result.scalar_one_or_none()

    async def create_admin(self, admin: AdminUser) -> AdminUser:
        return await self._add_and_commit(admin)

    async def set_admin_totp(
        self, admin_id: uuid.UUID, secret: str | None, enabled: bool
    ) -> bool:
        result = await self.session.execute(
            update(AdminUser)
            .where(AdminUser.id == admin_id)
            .values(totp_secret=secret, totp_enabled=enabled)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount > 0

    async def record_admin_login(
        self, admin_id: uuid.UUID, logged_in_at: datetime, ip_address: str | None
    ) -> None:
        await self.session.execute(
            update(AdminUser)
            .where(AdminUser.id == admin_id)
            .values(last_login_at=logged_in_at, last_login_ip=ip_address)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()

    async def count_roles(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(AdminRole))
        return result.scalar_one()

    async def create_roles(self, roles: list[AdminRole]) -> None:
        self.session.add_all(roles)
        await self.session.commit()

    async def get_role(self, role_id: uuid.UUID) -> AdminRole | None:
        return await self.session.get(AdminRole, role_id)

    async def get_role_by_name(self, name: str) -> AdminRole | None:
        result = await self.session.execute(select(AdminRole).where(AdminRole.name == name))
        return result.scalar_one_or_none()

    # --- Admin login codes & sessions ---

    async def replace_verification_code(self, email: str, code: str, expires_at: datetime) -> None:
        await self.session.execute(
            delete(AdminVerificationCode).where(AdminVerificationCode.email == email)
        )
        self.session.add(AdminVerificationCode(email=email, code=code, expires_at=expires_at))
        await self.session.commit()

    async def get_verification_code(self, email: str) -> AdminVerificationCode | None:
        result = await self.session.execute(
            select(AdminVerificationCode).where(AdminVerificationCode.email == email)
        )
        return result.scalar_one_or_none()

    async def delete_verification_codes(self, email: str) -> None:
        await self.session.execute(
            delete(AdminVerificationCode).where(AdminVerificationCode.email == email)
        )
        await self.session.commit()

    async def consume_verification_code(self, email: str, code: str) -> bool:
        result = await self.session.execute(
            delete(AdminVerificationCode).where(
                AdminVerificationCode.email == email,
                AdminVerificationCode.code == code,
            )
        )
        await self.session.commit()
        return result.rowcount > 0

    async def create_admin_session(self, admin_session: AdminSession) -> AdminSession:
        return await self._add_and_commit(admin_session)

    async def get_admin_session(self, session_token: str) -> AdminSession | None:
        result = await self.session.execute(
            select(AdminSession).where(AdminSession.session_token == session_token)
        )
        return result.scalar_one_or_none()

    # --- Audit ---

    async def append_audit_log(self, entry: AdminAuditLog) -> None:
        self.session.add(entry)
        await self.session.commit()
