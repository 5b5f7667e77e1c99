# backend/tests/unit/test_admin_auth_service.py
from datetime import UTC, datetime, timedelta

import pytest
from fakes import ADMIN_EMAIL, InMemoryCredentialStore, RecordingMailer

from fusion.core.request_context import RequestContext
from fusion.exceptions import (
    DeliveryError,
    ExpiredCodeError,
    ForbiddenError,
    InvalidCodeError,
)
from fusion.services import admin_auth_service

CONTEXT = RequestContext(ip_address="198.51.100.20", user_agent="pytest-browser")


async def _request_code(store: InMemoryCredentialStore, mailer: RecordingMailer) -> str:
    await admin_auth_service.send_admin_code(store, ADMIN_EMAIL, sender=mailer)
    return mailer.last_code


def test_require_admin_email_normalizes():
    assert admin_auth_service.require_admin_email("  Ops@PaperFrogs.dev ") == ADMIN_EMAIL


@pytest.mark.parametrize(
    "email", ["ops@example.com", "ops@paperfrogs.dev.evil.com", "ops@notpaperfrogs.dev"]
)
def test_require_admin_email_rejects_other_domains(email):
    with pytest.raises(ForbiddenError) as exc_info:
        admin_auth_service.require_admin_email(email)
    assert exc_info.value.message == "Unauthorized email domain"


@pytest.mark.asyncio
async def test_send_admin_code_stores_and_emails(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    code = await _request_code(store, mailer)

    stored = store.codes[ADMIN_EMAIL]
    assert stored.code == code
    assert len(code) == 6 and code.isdigit()
    ttl = stored.expires_at - datetime.now(UTC)
    assert timedelta(minutes=4) < ttl <= timedelta(minutes=5)

    email = mailer.sent[-1]
    assert email.to_email == ADMIN_EMAIL
    assert email.subject == "Admin Login Verification Code"
    assert code in email.html_content
    assert "5 minutes" in email.text_content


@pytest.mark.asyncio
async def test_send_admin_code_replaces_earlier_code(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    first = await _request_code(store, mailer)
    second = await _request_code(store, mailer)

    assert len(store.codes) == 1
    assert store.codes[ADMIN_EMAIL].code == second
    if first != second:
        with pytest.raises(InvalidCodeError):
            await admin_auth_service.verify_admin_code(store, ADMIN_EMAIL, first)


@pytest.mark.asyncio
async def test_send_admin_code_foreign_domain_sends_nothing(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    with pytest.raises(ForbiddenError):
        await admin_auth_service.send_admin_code(store, "someone@gmail.com", sender=mailer)
    assert mailer.sent == []
    assert store.codes == {}


@pytest.mark.asyncio
async def test_send_admin_code_mail_failure(store: InMemoryCredentialStore):
    with pytest.raises(DeliveryError) as exc_info:
        await admin_auth_service.send_admin_code(
            store, ADMIN_EMAIL, sender=RecordingMailer(succeed=False)
        )
    assert exc_info.value.message == "Failed to send verification code"


@pytest.mark.asyncio
async def test_first_login_creates_admin_with_default_role(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    code = await _request_code(store, mailer)

    login = await admin_auth_service.verify_admin_code(store, ADMIN_EMAIL, code, CONTEXT)

    assert len(login.token) == 64
    assert login.admin.email == ADMIN_EMAIL
    assert login.role is not None and login.role.name == "ops_admin"
    assert "client_management" in login.role.permissions
    assert {role.name for role in store.roles.values()} == set(admin_auth_service.DEFAULT_ROLES)

    session = store.sessions[login.token]
    assert session.admin_id == login.admin.id
    assert session.ip_address == "198.51.100.20"
    assert session.user_agent == "pytest-browser"
    assert timedelta(hours=23) < session.expires_at - datetime.now(UTC) <= timedelta(hours=24)

    assert login.admin.last_login_ip == "198.51.100.20"
    entry = store.audit_log[-1]
    assert entry.action == "admin_login"
    assert entry.details["first_login"] is True
    assert entry.details["role"] == "ops_admin"
    assert ADMIN_EMAIL not in store.codes


@pytest.mark.asyncio
async def test_code_is_single_use(store: InMemoryCredentialStore, mailer: RecordingMailer):
    code = await _request_code(store, mailer)
    await admin_auth_service.verify_admin_code(store, ADMIN_EMAIL, code)

    with pytest.raises(InvalidCodeError) as exc_info:
        await admin_auth_service.verify_admin_code(store, ADMIN_EMAIL, code)
    assert exc_info.value.message == "No verification code found. Please request a new one."


@pytest.mark.asyncio
async def test_wrong_code_keeps_stored_code(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    code = await _request_code(store, mailer)
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(InvalidCodeError) as exc_info:
        await admin_auth_service.verify_admin_code(store, ADMIN_EMAIL, wrong)
    assert exc_info.value.message == "Invalid verification code"
    assert store.codes[ADMIN_EMAIL].code == code


@pytest.mark.asyncio
async def test_expired_code_is_deleted(store: InMemoryCredentialStore, mailer: RecordingMailer):
    code = await _request_code(store, mailer)
    store.codes[ADMIN_EMAIL].expires_at = datetime.now(UTC) - timedelta(seconds=1)

    with pytest.raises(ExpiredCodeError):
        await admin_auth_service.verify_admin_code(store, ADMIN_EMAIL, code)
    assert ADMIN_EMAIL not in store.codes


@pytest.mark.asyncio
async def test_concurrent_consumption_loses(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    code = await _request_code(store, mailer)

    async def already_consumed(email: str, code: str) -> bool:
        return False

    store.consume_verification_code = already_consumed

    with pytest.raises(InvalidCodeError):
        await admin_auth_service.verify_admin_code(store, ADMIN_EMAIL, code)
    assert store.sessions == {}


@pytest.mark.asyncio
async def test_existing_admin_keeps_role_and_disabled_admin_is_refused(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    await admin_auth_service.ensure_default_roles(store)
    super_admin = await store.get_role_by_name("super_admin")
    admin = store.add_admin(role=super_admin)

    login = await admin_auth_service.verify_admin_code(
        store, ADMIN_EMAIL, await _request_code(store, mailer)
    )
    assert login.admin.id == admin.id
    assert login.role.name == "super_admin"
    assert store.audit_log[-1].details["first_login"] is False

    admin.is_active = False
    with pytest.raises(ForbiddenError, match="disabled"):
        await admin_auth_service.verify_admin_code(
            store, ADMIN_EMAIL, await _request_code(store, mailer)
        )


@pytest.mark.asyncio
async def test_ensure_default_roles_is_idempotent(store: InMemoryCredentialStore):
    await admin_auth_service.ensure_default_roles(store)
    await admin_auth_service.ensure_default_roles(store)
    assert len(store.roles) == len(admin_auth_service.DEFAULT_ROLES)


@pytest.mark.asyncio
async def test_validate_admin_session(store: InMemoryCredentialStore, mailer: RecordingMailer):
    login = await admin_auth_service.verify_admin_code(
        store, ADMIN_EMAIL, await _request_code(store, mailer)
    )

    check = await admin_auth_service.validate_admin_session(store, login.token)
    assert check.valid is True
    assert check.admin.id == login.admin.id
    assert check.role.name == "ops_admin"

    assert not (await admin_auth_service.validate_admin_session(store, "f" * 64)).valid

    store.sessions[login.token].expires_at = datetime.now(UTC) - timedelta(seconds=1)
    assert not (await admin_auth_service.validate_admin_session(store, login.token)).valid


@pytest.mark.asyncio
async def test_validate_session_of_disabled_admin(
    store: InMemoryCredentialStore, mailer: RecordingMailer
):
    login = await admin_auth_service.verify_admin_code(
        store, ADMIN_EMAIL, await _request_code(store, mailer)
    )
    login.admin.is_active = False

    assert not (await admin_auth_service.validate_admin_session(store, login.token)).valid


def test_admin_profile_without_role():
    store = InMemoryCredentialStore()
    admin = store.add_admin()
    profile = admin_auth_service.admin_profile(admin, None)
    assert profile == {
        "id": admin.id,
        "email": ADMIN_EMAIL,
        "role": None,
        "permissions": [],
        "totp_enabled": False,
    }
