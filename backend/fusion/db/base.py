# backend/fusion/db/base.py

# Import every model so Base.metadata is complete for Alembic autogenerate.
# When you add a new model (e.g., a new table), you must import it here.
from fusion.db.base_class import Base  # noqa: F401
from fusion.db.models.admin import (  # noqa: F401
    AdminAuditLog,
    AdminRole,
    AdminSession,
    AdminUser,
    AdminVerificationCode,
)
from fusion.db.models.api_key import ApiKey  # noqa: F401
from fusion.db.models.client_user import ClientUser  # noqa: F401
from fusion.db.models.organization import (  # noqa: F401
    Environment,
    Organization,
    OrganizationMember,
)
from fusion.db.models.webhook import Webhook, WebhookDelivery  # noqa: F401
