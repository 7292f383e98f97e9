"""
FastAPI dependencies for authentication.

get_current_user resolves the bearer token on a request to a user:
- no Authorization header: 401 UNAUTHORIZED
- invalid, expired or wrong-type token, or a token whose user no longer
  exists: 403 FORBIDDEN
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import schemas
import user_service
from auth.security import verify_token
from database import get_db
from errors import AuthenticationError, InvalidTokenError

logger = logging.getLogger(__name__)

# auto_error=False so a missing header reaches us and gets the envelope
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> schemas.User:
    """
    Extract and validate the current user from a JWT bearer token.

    Raises:
        AuthenticationError: if no bearer token was supplied
        InvalidTokenError: if the token is invalid or its user is gone

    Example:
        @app.get("/api/protected")
        async def protected_route(user: schemas.User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    if credentials is None or not credentials.credentials:
        logger.debug("Request without bearer token")
        raise AuthenticationError("Authentication required")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise InvalidTokenError("Invalid or expired token")

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise InvalidTokenError("Invalid token type")

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id:
        logger.info("Token payload missing 'sub' claim")
        raise InvalidTokenError("Invalid token payload")

    user = user_service.get_user(db, user_id)
    if user is None:
        logger.info(f"User not found for token subject: {user_id}")
        raise InvalidTokenError("Invalid or expired token")

    logger.debug(f"Authenticated user {user.id}")
    return user
