# backend/tests/conftest.py
import os

# Settings are read at import time, so pin the environment before importing the app
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["ADMIN_EMAIL_DOMAIN"] = "paperfrogs.dev"

from collections.abc import AsyncGenerator  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fakes import InMemoryCredentialStore, RecordingMailer, WebhookReceiver  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from fusion.api.deps import (  # noqa: E402
    get_credential_store,
    get_email_sender,
    get_webhook_client,
)
from fusion.main import app as fastapi_app  # noqa: E402


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def receiver() -> WebhookReceiver:
    return WebhookReceiver()


@pytest.fixture
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record retry delays instead of sleeping through them."""
    delays: list[float] = []

    async def fake_sleep(delay: float) -> None:
        delays.append(delay)

    monkeypatch.setattr("fusion.services.webhook_delivery.asyncio.sleep", fake_sleep)
    return delays


@pytest_asyncio.fixture(scope="function")
async def test_client(
    store: InMemoryCredentialStore,
    mailer: RecordingMailer,
    receiver: WebhookReceiver,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Creates an httpx AsyncClient using ASGITransport for testing the FastAPI app.
    The credential store, mailer and outbound webhook client are swapped for fakes.
    """

    async def override_get_webhook_client() -> AsyncGenerator[httpx.AsyncClient, None]:
        async with receiver.client() as client:
            yield client

    fastapi_app.dependency_overrides[get_credential_store] = lambda: store
    fastapi_app.dependency_overrides[get_email_sender] = lambda: mailer
    fastapi_app.dependency_overrides[get_webhook_client] = override_get_webhook_client

    async with AsyncClient(
        transport=ASGITransport(app=fastapi_app), base_url="http://test"
    ) as client:
        yield client

    fastapi_app.dependency_overrides.clear()
