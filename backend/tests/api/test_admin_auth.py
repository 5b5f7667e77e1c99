# backend/tests/api/test_admin_auth.py
"""Tests for the admin code login endpoints."""

import pytest
from fakes import ADMIN_EMAIL, InMemoryCredentialStore, RecordingMailer
from fastapi import status
from httpx import AsyncClient

from fusion.core.config import settings

API_PREFIX = settings.API_PREFIX


async def _login(test_client: AsyncClient, mailer: RecordingMailer) -> dict:
    sent = await test_client.post(f"{API_PREFIX}/send-admin-code", json={"email": ADMIN_EMAIL})
    assert sent.status_code == status.HTTP_200_OK, sent.text
    verified = await test_client.post(
        f"{API_PREFIX}/verify-admin-code",
        json={"email": ADMIN_EMAIL, "code": mailer.last_code},
        headers={"User-Agent": "AdminConsole/1.0", "X-Real-IP": "192.0.2.44"},
    )
    assert verified.status_code == status.HTTP_200_OK, verified.text
    return verified.json()


@pytest.mark.asyncio
async def test_send_admin_code(test_client: AsyncClient, mailer: RecordingMailer) -> None:
    response = await test_client.post(
        f"{API_PREFIX}/send-admin-code", json={"email": "Ops@PaperFrogs.dev"}
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "message": "Code sent"}
    assert mailer.sent[0].to_email == ADMIN_EMAIL


@pytest.mark.asyncio
async def test_send_admin_code_foreign_domain(
    test_client: AsyncClient, mailer: RecordingMailer
) -> None:
    response = await test_client.post(
        f"{API_PREFIX}/send-admin-code", json={"email": "attacker@example.com"}
    )

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"error": "Unauthorized email domain"}
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_send_admin_code_invalid_email(test_client: AsyncClient) -> None:
    response = await test_client.post(f"{API_PREFIX}/send-admin-code", json={"email": "nope"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.asyncio
async def test_send_admin_code_mail_failure(
    test_client: AsyncClient, mailer: RecordingMailer
) -> None:
    mailer.succeed = False

    response = await test_client.post(f"{API_PREFIX}/send-admin-code", json={"email": ADMIN_EMAIL})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "Failed to send verification code"}


@pytest.mark.asyncio
async def test_verify_admin_code_logs_in(
    test_client: AsyncClient, store: InMemoryCredentialStore, mailer: RecordingMailer
) -> None:
    data = await _login(test_client, mailer)

    assert len(data["token"]) == 64
    assert data["expiresAt"]
    assert data["admin"]["email"] == ADMIN_EMAIL
    assert data["admin"]["role"] == "ops_admin"
    assert data["admin"]["totp_enabled"] is False

    session = store.sessions[data["token"]]
    assert session.ip_address == "192.0.2.44"
    assert session.user_agent == "AdminConsole/1.0"
    assert store.audit_log[-1].action == "admin_login"


@pytest.mark.asyncio
async def test_verify_admin_code_wrong_code(
    test_client: AsyncClient, mailer: RecordingMailer
) -> None:
    await test_client.post(f"{API_PREFIX}/send-admin-code", json={"email": ADMIN_EMAIL})
    wrong = "000000" if mailer.last_code != "000000" else "111111"

    response = await test_client.post(
        f"{API_PREFIX}/verify-admin-code", json={"email": ADMIN_EMAIL, "code": wrong}
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid verification code"}


@pytest.mark.asyncio
async def test_verify_admin_code_without_request(test_client: AsyncClient) -> None:
    response = await test_client.post(
        f"{API_PREFIX}/verify-admin-code", json={"email": ADMIN_EMAIL, "code": "123456"}
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "No verification code found. Please request a new one."}


@pytest.mark.asyncio
async def test_validate_admin_session(
    test_client: AsyncClient, store: InMemoryCredentialStore, mailer: RecordingMailer
) -> None:
    data = await _login(test_client, mailer)

    valid = await test_client.post(
        f"{API_PREFIX}/validate-admin-session", json={"token": data["token"]}
    )
    assert valid.status_code == status.HTTP_200_OK
    assert valid.json()["valid"] is True
    assert valid.json()["admin"]["email"] == ADMIN_EMAIL
    assert "client_management" in valid.json()["admin"]["permissions"]

    invalid = await test_client.post(
        f"{API_PREFIX}/validate-admin-session", json={"token": "f" * 64}
    )
    assert invalid.status_code == status.HTTP_200_OK
    assert invalid.json() == {"valid": False, "admin": None, "expiresAt": None}
