# backend/tests/api/test_admin_mfa.py
"""Tests for admin TOTP enrollment endpoints."""

import time
import uuid

import pyotp
import pytest
from fakes import InMemoryCredentialStore
from fastapi import status
from httpx import AsyncClient

from fusion.core.config import settings

API_PREFIX = settings.API_PREFIX


@pytest.mark.asyncio
async def test_generate_totp(test_client: AsyncClient, store: InMemoryCredentialStore) -> None:
    admin = store.add_admin()

    response = await test_client.post(
        f"{API_PREFIX}/generate-totp",
        json={"adminId": str(admin.id), "email": admin.email},
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["success"] is True
    assert data["qrCode"].startswith("data:image/png;base64,")
    pyotp.TOTP(data["secret"]).now()
    # Nothing is stored until enable-totp
    assert admin.totp_secret is None
    assert admin.totp_enabled is False


@pytest.mark.asyncio
async def test_enable_and_disable_totp(
    test_client: AsyncClient, store: InMemoryCredentialStore
) -> None:
    admin = store.add_admin()
    generated = await test_client.post(
        f"{API_PREFIX}/generate-totp",
        json={"adminId": str(admin.id), "email": admin.email},
    )
    secret = generated.json()["secret"]

    enabled = await test_client.post(
        f"{API_PREFIX}/enable-totp",
        json={
            "adminId": str(admin.id),
            "email": admin.email,
            "secret": secret,
            "code": pyotp.TOTP(secret).now(),
        },
        headers={"User-Agent": "AdminConsole/1.0"},
    )
    assert enabled.status_code == status.HTTP_200_OK
    assert enabled.json() == {"success": True}
    assert admin.totp_enabled is True
    assert admin.totp_secret == secret
    assert store.audit_log[-1].user_agent == "AdminConsole/1.0"

    disabled = await test_client.post(
        f"{API_PREFIX}/disable-totp",
        json={"adminId": str(admin.id), "email": admin.email},
    )
    assert disabled.status_code == status.HTTP_200_OK
    assert admin.totp_enabled is False
    assert admin.totp_secret is None
    assert [entry.action for entry in store.audit_log] == ["totp_enabled", "totp_disabled"]


@pytest.mark.asyncio
async def test_enable_totp_with_stale_code(
    test_client: AsyncClient, store: InMemoryCredentialStore
) -> None:
    admin = store.add_admin()
    secret = pyotp.random_base32()

    response = await test_client.post(
        f"{API_PREFIX}/enable-totp",
        json={
            "adminId": str(admin.id),
            "email": admin.email,
            "secret": secret,
            "code": pyotp.TOTP(secret).at(time.time() - 600),
        },
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Invalid verification code"}
    assert admin.totp_enabled is False


@pytest.mark.asyncio
async def test_enable_totp_rejects_non_numeric_code(
    test_client: AsyncClient, store: InMemoryCredentialStore
) -> None:
    admin = store.add_admin()

    response = await test_client.post(
        f"{API_PREFIX}/enable-totp",
        json={
            "adminId": str(admin.id),
            "email": admin.email,
            "secret": pyotp.random_base32(),
            "code": "12ab56",
        },
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Invalid request body"


@pytest.mark.asyncio
async def test_disable_totp_unknown_admin(test_client: AsyncClient) -> None:
    response = await test_client.post(
        f"{API_PREFIX}/disable-totp",
        json={"adminId": str(uuid.uuid4()), "email": "ghost@paperfrogs.dev"},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "Admin not found"}
