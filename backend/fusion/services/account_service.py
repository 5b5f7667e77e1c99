# backend/fusion/services/account_service.py
import logging
import uuid

from fusion.core.config import settings
from fusion.core.security import hash_password, verify_password
from fusion.crud.credential_store import CredentialStore
from fusion.exceptions import InvalidInputError, NotFoundError, UnauthorizedError

logger = logging.getLogger(__name__)


async def change_password(
    store: CredentialStore,
    user_id: uuid.UUID,
    current_password: str,
    new_password: str,
) -> None:
    """Replace a client user's password after checking the current one."""
    if not current_password or not new_password:
        raise InvalidInputError("Current and new passwords are required")
    if len(new_password) < settings.PASSWORD_MIN_LENGTH:
        raise InvalidInputError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters"
        )

    user = await store.get_client_user(user_id)
    if user is None:
        raise NotFoundError("User not found")

    if not verify_password(current_password, user.password_hash):
        logger.warning(f"Password change rejected for user {user_id}: wrong current password")
        raise UnauthorizedError("Current password is incorrect")

    if not await store.update_client_password(user_id, hash_password(new_password)):
        raise NotFoundError("User not found")
    logger.info(f"Password changed for user {user_id}")
