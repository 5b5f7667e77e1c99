# backend/fusion/api/deps.py
"""Dependency providers shared by the routers. Tests replace these via dependency_overrides."""

from collections.abc import AsyncGenerator
from typing import Annotated

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fusion.core.config import settings
from fusion.core.request_context import RequestContext, get_request_context
from fusion.crud import CredentialStore, SqlCredentialStore
from fusion.db.session import get_async_session
from fusion.services.email_service import EmailSender, send_email


async def get_credential_store(
    session: Annotated[AsyncSession, Depends(get_async_session)],
) -> CredentialStore:
    return SqlCredentialStore(session)


def get_email_sender() -> EmailSender:
    return send_email


async def get_webhook_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(
        timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
        follow_redirects=False,
    ) as client:
        yield client


StoreDep = Annotated[CredentialStore, Depends(get_credential_store)]
EmailSenderDep = Annotated[EmailSender, Depends(get_email_sender)]
WebhookClientDep = Annotated[httpx.AsyncClient, Depends(get_webhook_client)]
RequestContextDep = Annotated[RequestContext, Depends(get_request_context)]
