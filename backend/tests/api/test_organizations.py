# backend/tests/api/test_organizations.py
"""Tests for organization onboarding and client account endpoints."""

import uuid

import pytest
from fakes import InMemoryCredentialStore
from fastapi import status
from httpx import AsyncClient

from fusion.core.config import settings
from fusion.core.security import verify_password

API_PREFIX = settings.API_PREFIX


@pytest.mark.asyncio
async def test_create_organization_and_list_environments(
    test_client: AsyncClient, store: InMemoryCredentialStore
) -> None:
    owner = store.add_client_user()

    response = await test_client.post(
        f"{API_PREFIX}/create-organization",
        json={"userId": str(owner.id), "name": "Paper Frogs Studio"},
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["success"] is True
    assert data["organization"]["name"] == "Paper Frogs Studio"
    assert data["organization"]["slug"].startswith("paper-frogs-studio-")
    org_id = data["organization"]["id"]

    environments = await test_client.get(
        f"{API_PREFIX}/get-environments", params={"organizationId": org_id}
    )
    assert environments.status_code == status.HTTP_200_OK
    assert [env["name"] for env in environments.json()["environments"]] == [
        "sandbox",
        "production",
    ]
    assert environments.json()["count"] == 2


@pytest.mark.asyncio
async def test_create_organization_unknown_user(test_client: AsyncClient) -> None:
    response = await test_client.post(
        f"{API_PREFIX}/create-organization",
        json={"userId": str(uuid.uuid4()), "name": "Acme"},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"error": "User not found"}


@pytest.mark.asyncio
async def test_new_environments_accept_keys(
    test_client: AsyncClient, store: InMemoryCredentialStore
) -> None:
    owner = store.add_client_user()
    created = await test_client.post(
        f"{API_PREFIX}/create-organization",
        json={"userId": str(owner.id), "name": "Acme"},
    )
    org_id = created.json()["organization"]["id"]
    environments = await test_client.post(
        f"{API_PREFIX}/get-environments", json={"organizationId": org_id}
    )
    production = next(e for e in environments.json()["environments"] if e["is_production"])

    key = await test_client.post(
        f"{API_PREFIX}/create-api-key",
        json={
            "organizationId": org_id,
            "environmentId": production["id"],
            "keyName": "Live",
            "scopes": ["verify"],
        },
    )
    assert key.status_code == status.HTTP_200_OK
    assert key.json()["fullKey"].startswith("fus_live_")


@pytest.mark.asyncio
async def test_change_password(test_client: AsyncClient, store: InMemoryCredentialStore) -> None:
    user = store.add_client_user(password="old-password-1")

    response = await test_client.post(
        f"{API_PREFIX}/change-password",
        json={
            "userId": str(user.id),
            "currentPassword": "old-password-1",
            "newPassword": " new password with spaces ",
        },
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "message": "Password changed successfully"}
    # Whitespace in passwords is kept as typed
    assert verify_password(" new password with spaces ", user.password_hash)


@pytest.mark.asyncio
async def test_change_password_wrong_current(
    test_client: AsyncClient, store: InMemoryCredentialStore
) -> None:
    user = store.add_client_user(password="old-password-1")

    response = await test_client.post(
        f"{API_PREFIX}/change-password",
        json={
            "userId": str(user.id),
            "currentPassword": "guess",
            "newPassword": "new-password-2",
        },
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"error": "Current password is incorrect"}
