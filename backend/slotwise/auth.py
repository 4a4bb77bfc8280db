# backend/slotwise/auth.py
"""
Bearer token handling.

Tokens are issued by the account service. The booking core only verifies
them; the actor's role is then resolved from the directory, so a token
never grants more than the account currently has.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

import jwt
from pydantic import SecretStr

from .core.config import settings

logger = logging.getLogger(__name__)


def _secret_value(secret_obj: Any) -> str:
    if isinstance(secret_obj, SecretStr):
        return secret_obj.get_secret_value()
    return str(secret_obj)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT access token. Raises ``jwt.PyJWTError`` on failure."""
    payload_raw = jwt.decode(
        token,
        _secret_value(settings.secret_key),
        algorithms=[settings.algorithm],
        options={"verify_aud": False},
    )
    return cast(Dict[str, Any], payload_raw)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode; ``sub`` is the user id
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.access_token_expire_minutes
        )
    to_encode.update({"exp": expire})

    encoded_jwt = cast(
        str,
        jwt.encode(to_encode, _secret_value(settings.secret_key), algorithm=settings.algorithm),
    )
    logger.debug(f"Created access token for user: {data.get('sub')}")
    return encoded_jwt
