# backend/fusion/services/organization_service.py
"""Tenant onboarding: an organization, its owner membership and both environments."""

import logging
import re
import uuid
from datetime import UTC, date, datetime, timedelta

from fusion.core.log_utils import sanitize_for_log
from fusion.core.security import generate_slug_suffix
from fusion.crud.credential_store import CredentialStore
from fusion.db.models.organization import Environment, Organization
from fusion.exceptions import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)

TRIAL_DAYS = 14
DEFAULT_MONTHLY_QUOTA = 1000

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_SEPARATORS.sub("-", value.lower()).strip("-")


def first_day_of_next_month(today: date) -> date:
    if today.month == 12:
        return date(today.year + 1, 1, 1)
    return date(today.year, today.month + 1, 1)


def default_environments() -> list[Environment]:
    return [
        Environment(
            name="sandbox",
            display_name="Sandbox",
            description="Test environment for development",
            is_production=False,
        ),
        Environment(
            name="production",
            display_name="Production",
            description="Live production environment",
            is_production=True,
        ),
    ]


async def create_organization(
    store: CredentialStore,
    user_id: uuid.UUID,
    name: str,
    slug: str | None = None,
) -> Organization:
    name = name.strip()
    if not name:
        raise InvalidInputError("User ID and organization name are required")

    user = await store.get_client_user(user_id)
    if user is None:
        raise NotFoundError("User not found")

    base_slug = slugify(slug) if slug and slug.strip() else slugify(name)
    if not base_slug:
        raise InvalidInputError("Organization name must contain letters or digits")
    org_slug = f"{base_slug}-{generate_slug_suffix()}"
    if await store.slug_exists(org_slug):
        raise InvalidInputError("Organization slug already exists")

    now = datetime.now(UTC)
    organization = Organization(
        id=uuid.uuid4(),
        name=name,
        slug=org_slug,
        organization_type="business",
        account_status="pending_approval",
        plan_type="free",
        billing_status="trial",
        trial_ends_at=now + timedelta(days=TRIAL_DAYS),
        quota_verifications_monthly=DEFAULT_MONTHLY_QUOTA,
        quota_used_current_month=0,
        quota_reset_date=first_day_of_next_month(now.date()),
    )
    created = await store.create_organization(
        organization, owner_id=user.id, environments=default_environments()
    )

    logger.info(
        "Organization %s (%s) created by user %s",
        created.id,
        sanitize_for_log(org_slug, 255),
        user_id,
    )
    return created


async def list_environments(
    store: CredentialStore, organization_id: uuid.UUID
) -> list[Environment]:
    """Sandbox first, then production."""
    return await store.list_environments(organization_id)
