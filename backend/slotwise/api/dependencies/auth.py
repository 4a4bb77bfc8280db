# backend/slotwise/api/dependencies/auth.py
"""
Actor resolution.

Every route receives an explicit ``Actor``; services never read request
state.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from sqlalchemy.orm import Session

from ...auth import decode_access_token
from ...core.exceptions import UnauthorizedException
from ...domain.access_policy import Actor
from ...repositories.factory import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the calling actor from the bearer token and the account directory."""
    if credentials is None:
        raise UnauthorizedException("Not authenticated", code="NOT_AUTHENTICATED").to_http_exception()
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        logger.info(f"Rejected access token: {type(exc).__name__}")
        raise UnauthorizedException(
            "Could not validate credentials", code="INVALID_TOKEN"
        ).to_http_exception()

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedException(
            "Could not validate credentials", code="INVALID_TOKEN"
        ).to_http_exception()

    user = RepositoryFactory.create_directory_repository(db).get_user(user_id)
    if user is None:
        raise UnauthorizedException("Unknown user", code="INVALID_TOKEN").to_http_exception()
    return Actor.of(user.id, user.role)
