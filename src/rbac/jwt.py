"""
JWT Token Handling

Bearer tokens identify the user (sub = user id). The user's role is
always loaded from the database, never trusted from token claims.
"""

import logging
import secrets
import warnings
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from config.settings import AuthSettings, get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

_jwt_secret_cache: Optional[str] = None


def _get_jwt_secret(settings: AuthSettings) -> str:
    """
    Get JWT secret from settings.

    SECURITY: In production, JWT_SECRET must be set.
    """
    if settings.secret:
        if len(settings.secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters for security")
        return settings.secret

    if get_settings().is_production:
        raise RuntimeError(
            "JWT_SECRET environment variable is required in production. "
            "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
        )

    # Development fallback - unique per process start
    warnings.warn(
        "JWT_SECRET not set - using generated development secret.",
        UserWarning
    )
    return f"DEV-ONLY-{secrets.token_hex(32)}"


def get_jwt_secret() -> str:
    """Get the JWT secret (cached after first call)."""
    global _jwt_secret_cache
    if _jwt_secret_cache is None:
        _jwt_secret_cache = _get_jwt_secret(get_settings().auth)
    return _jwt_secret_cache


def reset_jwt_secret() -> None:
    global _jwt_secret_cache
    _jwt_secret_cache = None


# =============================================================================
# TOKEN CREATION
# =============================================================================

def create_access_token(
    user_id: int,
    username: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User's id (becomes the sub claim)
        username: Optional display claim
        expires_delta: Custom expiration time

    Returns:
        JWT token string
    """
    settings = get_settings().auth
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_delta,
        "type": "access",
    }
    if username:
        payload["username"] = username
    if settings.issuer:
        payload["iss"] = settings.issuer
    if settings.audience:
        payload["aud"] = settings.audience

    return jwt.encode(payload, get_jwt_secret(), algorithm=settings.algorithm)


# =============================================================================
# TOKEN DECODING
# =============================================================================

def decode_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT token.

    Raises:
        jwt.InvalidTokenError: If token is invalid or expired
    """
    settings = get_settings().auth
    return jwt.decode(
        token,
        get_jwt_secret(),
        algorithms=[settings.algorithm],
        issuer=settings.issuer,
        audience=settings.audience,
    )


def decode_token_safe(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode a JWT token without raising exceptions.

    Returns None if token is invalid.
    """
    try:
        return decode_token(token)
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected bearer token: {e}")
        return None


def get_token_user_id(token: str) -> Optional[int]:
    """User id from a valid access token, or None."""
    payload = decode_token_safe(token)
    if not payload or payload.get("type") != "access":
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
