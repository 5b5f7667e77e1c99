# backend/fusion/core/security.py
"""Secret generation and hashing.

Two hashing schemes live here. API keys are long random strings, so a fast
SHA-256 digest serves equality lookups. Client passwords are low entropy and
go through the salted slow hash of ``PasswordHelper``.
"""

import hashlib
import hmac
import json
import secrets
from typing import Any

from fastapi_users.password import PasswordHelper

LIVE_KEY_PREFIX = "fus_live_"
TEST_KEY_PREFIX = "fus_test_"
SIGNING_SECRET_PREFIX = "whsec_"

API_KEY_SECRET_BYTES = 32
SIGNING_SECRET_BYTES = 32
SESSION_TOKEN_BYTES = 32
SLUG_SUFFIX_BYTES = 4
KEY_PARTIAL_LENGTH = 4

LOGIN_CODE_MIN = 100000
LOGIN_CODE_MAX = 999999

# --- Password Hashing ---
password_helper = PasswordHelper()


def generate_hex_token(byte_length: int) -> str:
    """Random hex string of ``2 * byte_length`` characters from the OS CSPRNG."""
    return secrets.token_hex(byte_length)


def key_prefix_for(is_production: bool) -> str:
    return LIVE_KEY_PREFIX if is_production else TEST_KEY_PREFIX


def generate_api_key(prefix: str) -> str:
    """Full API key: the environment prefix followed by 64 hex characters."""
    return f"{prefix}{generate_hex_token(API_KEY_SECRET_BYTES)}"


def generate_signing_secret() -> str:
    return f"{SIGNING_SECRET_PREFIX}{generate_hex_token(SIGNING_SECRET_BYTES)}"


def generate_session_token() -> str:
    return generate_hex_token(SESSION_TOKEN_BYTES)


def generate_slug_suffix() -> str:
    return generate_hex_token(SLUG_SUFFIX_BYTES)


def generate_login_code() -> str:
    """Six-digit admin login code, uniform over 100000-999999."""
    return str(LOGIN_CODE_MIN + secrets.randbelow(LOGIN_CODE_MAX - LOGIN_CODE_MIN + 1))


def hash_secret(secret: str) -> str:
    """SHA-256 hex digest used to store and look up API keys."""
    return hashlib.sha256(secret.encode()).hexdigest()


def secret_partial(secret: str) -> str:
    return secret[-KEY_PARTIAL_LENGTH:]


def compare_digest(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())


def hash_password(password: str) -> str:
    """Hashes a password using the configured password helper."""
    return password_helper.hash(password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verifies a plain password against a stored hash."""
    if not hashed_password:
        return False
    verified, _updated_hash = password_helper.verify_and_update(plain_password, hashed_password)
    return verified


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """Compact JSON encoding; the same bytes are signed and sent."""
    return json.dumps(payload, separators=(",", ":"), default=str).encode()


def sign_payload(body: bytes, signing_secret: str) -> str:
    """HMAC-SHA256 hex signature of a webhook body."""
    return hmac.new(signing_secret.encode(), body, hashlib.sha256).hexdigest()


def action_hash(actor_id: str, timestamp_ms: int) -> str:
    """Integrity hash stored with each admin audit entry."""
    return hashlib.sha256(f"{actor_id}-{timestamp_ms}".encode()).hexdigest()
