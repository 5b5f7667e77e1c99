# backend/tests/integration/test_sql_store.py
"""
SqlCredentialStore against a real PostgreSQL database.

Set TEST_DATABASE_URL (postgresql+asyncpg://...) to run these; the schema is
dropped and recreated for every test.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fusion.core.security import generate_api_key, hash_secret, secret_partial
from fusion.crud import SqlCredentialStore
from fusion.db.base import Base
from fusion.db.models.api_key import ApiKey
from fusion.db.models.client_user import ClientUser
from fusion.db.models.webhook import Webhook, WebhookDelivery
from fusion.services import organization_service

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

pytestmark = pytest.mark.skipif(
    not TEST_DATABASE_URL, reason="TEST_DATABASE_URL is not configured"
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def sql_store(db_session: AsyncSession) -> SqlCredentialStore:
    return SqlCredentialStore(db_session)


async def _organization(sql_store: SqlCredentialStore):
    user = ClientUser(email=f"{uuid.uuid4().hex[:8]}@example.com")
    sql_store.session.add(user)
    await sql_store.session.commit()
    organization = await organization_service.create_organization(sql_store, user.id, "Acme")
    sandbox, production = await sql_store.list_environments(organization.id)
    return organization, sandbox, production


def _api_key(organization_id: uuid.UUID, environment_id: uuid.UUID) -> ApiKey:
    full_key = generate_api_key("fus_test_")
    return ApiKey(
        organization_id=organization_id,
        environment_id=environment_id,
        key_name="k",
        key_prefix="fus_test_",
        key_hash=hash_secret(full_key),
        key_secret_partial=secret_partial(full_key),
        scopes=["verify"],
    )


@pytest.mark.asyncio
async def test_create_organization_with_environments(sql_store: SqlCredentialStore):
    organization, sandbox, production = await _organization(sql_store)

    assert organization.created_at is not None
    assert (sandbox.name, sandbox.is_production) == ("sandbox", False)
    assert (production.name, production.is_production) == ("production", True)
    assert await sql_store.slug_exists(organization.slug)


@pytest.mark.asyncio
async def test_revoke_is_conditional(sql_store: SqlCredentialStore):
    organization, sandbox, _ = await _organization(sql_store)
    api_key = await sql_store.insert_api_key(_api_key(organization.id, sandbox.id))
    now = datetime.now(UTC)

    assert await sql_store.revoke_api_key(api_key.id, organization.id, None, now)
    assert not await sql_store.revoke_api_key(api_key.id, organization.id, None, now)
    assert not await sql_store.revoke_api_key(api_key.id, uuid.uuid4(), None, now)


@pytest.mark.asyncio
async def test_rotation_after_revoke_inserts_nothing(sql_store: SqlCredentialStore):
    organization, sandbox, _ = await _organization(sql_store)
    old = await sql_store.insert_api_key(_api_key(organization.id, sandbox.id))
    await sql_store.revoke_api_key(old.id, organization.id, None, datetime.now(UTC))

    result = await sql_store.rotate_api_key(
        old, _api_key(organization.id, sandbox.id), datetime.now(UTC)
    )

    assert result is None
    assert len(await sql_store.list_api_keys(organization.id, sandbox.id)) == 1


@pytest.mark.asyncio
async def test_webhook_delete_cascades_to_deliveries(sql_store: SqlCredentialStore):
    organization, sandbox, _ = await _organization(sql_store)
    webhook = await sql_store.insert_webhook(
        Webhook(
            organization_id=organization.id,
            environment_id=sandbox.id,
            endpoint_url="https://hooks.example.com",
            event_types=["verification.completed"],
            signing_secret="whsec_test",
            retry_policy={"max_attempts": 3, "backoff": "exponential"},
        )
    )
    await sql_store.insert_delivery(
        WebhookDelivery(
            webhook_id=webhook.id,
            event_type="webhook.test",
            payload={"event": "webhook.test"},
            response_status=200,
            response_time_ms=12,
        )
    )
    await sql_store.record_delivery_outcome(webhook.id, True, datetime.now(UTC))

    subscribed = await sql_store.list_subscribed_webhooks(
        organization.id, sandbox.id, "verification.completed"
    )
    assert [w.id for w in subscribed] == [webhook.id]
    assert len(await sql_store.list_deliveries(webhook.id)) == 1

    assert await sql_store.delete_webhook(webhook.id)
    assert await sql_store.list_deliveries(webhook.id) == []
    assert not await sql_store.delete_webhook(webhook.id)


@pytest.mark.asyncio
async def test_verification_code_is_consumed_once(sql_store: SqlCredentialStore):
    email = "ops@paperfrogs.dev"
    expires_at = datetime.now(UTC) + timedelta(minutes=5)
    await sql_store.replace_verification_code(email, "111111", expires_at)
    await sql_store.replace_verification_code(email, "222222", expires_at)

    assert (await sql_store.get_verification_code(email)).code == "222222"
    assert not await sql_store.consume_verification_code(email, "111111")
    assert await sql_store.consume_verification_code(email, "222222")
    assert not await sql_store.consume_verification_code(email, "222222")
