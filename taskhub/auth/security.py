import base64
import hashlib
import hmac
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import jwt

from taskhub.config import Settings, settings as default_settings
from taskhub.errors import AuthRequired, InvalidInput

PBKDF2_ITERATIONS = 310_000


def hash_password(password: str, salt_b64: Optional[str] = None) -> Tuple[str, str]:
    """PBKDF2-SHA256 digest and salt, both base64 encoded"""
    salt = base64.b64decode(salt_b64) if salt_b64 else secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return base64.b64encode(digest).decode("utf-8"), base64.b64encode(salt).decode("utf-8")


def verify_password(password: str, expected_hash: str, salt_b64: str) -> bool:
    computed, _ = hash_password(password, salt_b64)
    return hmac.compare_digest(computed, expected_hash)


def validate_password(password: str, config: Settings = default_settings) -> None:
    if not password or len(password) < config.min_password_length:
        raise InvalidInput(f"Password must be at least {config.min_password_length} characters long")


def validate_display_name(display_name: str) -> str:
    """Trimmed display name, 1-50 printable characters"""
    cleaned = (display_name or "").strip()
    if not cleaned:
        raise InvalidInput("Display name cannot be empty")
    if len(cleaned) > 50:
        raise InvalidInput("Display name must be at most 50 characters long")
    if re.search(r"[\x00-\x1f]", cleaned):
        raise InvalidInput("Display name contains invalid characters")
    return cleaned


def generate_invite_code() -> str:
    """Unguessable capability token for private channels"""
    return secrets.token_urlsafe(16)


def create_jwt_token(
    user_id: str,
    config: Settings = default_settings,
    token_type: str = "access",
    expires_in: Optional[int] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "exp": now + timedelta(seconds=expires_in or config.token_expiry),
        "iat": now,
        "type": token_type,
    }
    return jwt.encode(payload, config.secret_key, algorithm=config.algorithm)


def verify_jwt_token(token: str, config: Settings = default_settings, token_type: str = "access") -> Dict[str, Any]:
    if not token or len(token) < 10:
        raise AuthRequired("Invalid token format")
    try:
        payload = jwt.decode(token, config.secret_key, algorithms=[config.algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthRequired("Token expired")
    except jwt.InvalidTokenError:
        raise AuthRequired("Invalid token")

    if payload.get("type") != token_type or not payload.get("user_id"):
        raise AuthRequired("Invalid token payload")
    return payload
