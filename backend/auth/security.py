"""
Security utilities for password hashing and JWT access tokens.

This module provides cryptographic functions for:
- Password hashing using Argon2id (memory-hard, GPU-resistant)
- JWT access token creation and verification
"""

import logging
import os
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from time_utils import utc_now

logger = logging.getLogger(__name__)


def is_production_like() -> bool:
    """
    Check if the current environment is production-like (production or staging).

    Returns:
        True if ENVIRONMENT is "production" or "staging", False otherwise
    """
    env = os.environ.get("ENVIRONMENT", "development").lower()
    return env in ("production", "staging")


# Password hashing configuration using Argon2id
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# JWT configuration
# Load SECRET_KEY from environment variable (REQUIRED in production)
SECRET_KEY = os.environ.get("JWT_SECRET_KEY")
if not SECRET_KEY:
    if is_production_like():
        raise ValueError(
            "JWT_SECRET_KEY environment variable is required in production. "
            "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
        )
    # Development fallback: tokens do not survive a restart
    SECRET_KEY = "dev-insecure-key-" + secrets.token_urlsafe(32)
    logger.warning(
        "JWT_SECRET_KEY not set! Using temporary development key. "
        "This is INSECURE for production. Set JWT_SECRET_KEY environment variable."
    )

ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")

DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES = 60

try:
    ACCESS_TOKEN_EXPIRE_MINUTES = int(
        os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", str(DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES))
    )
    if ACCESS_TOKEN_EXPIRE_MINUTES < 1 or ACCESS_TOKEN_EXPIRE_MINUTES > 1440:  # 1 min to 24 hours
        logger.warning(
            f"ACCESS_TOKEN_EXPIRE_MINUTES={ACCESS_TOKEN_EXPIRE_MINUTES} is outside safe range (1-1440). "
            f"Using default of {DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES} minutes."
        )
        ACCESS_TOKEN_EXPIRE_MINUTES = DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES
except ValueError:
    logger.warning(
        f"Invalid ACCESS_TOKEN_EXPIRE_MINUTES value in environment. "
        f"Using default of {DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES} minutes."
    )
    ACCESS_TOKEN_EXPIRE_MINUTES = DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES

SUPPORTED_ALGORITHMS = ["HS256", "HS384", "HS512"]
if ALGORITHM not in SUPPORTED_ALGORITHMS:
    logger.warning(
        f"Unsupported JWT_ALGORITHM={ALGORITHM}. Using HS256. "
        f"Supported: {', '.join(SUPPORTED_ALGORITHMS)}"
    )
    ALGORITHM = "HS256"


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Example:
        >>> hashed = hash_password("my_secure_password")
        >>> verify_password("my_secure_password", hashed)
        True
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    is_valid = pwd_context.verify(plain_password, hashed_password)
    logger.debug(f"Password verification result: {is_valid}")
    return is_valid


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in the token (sub, email, name)
        expires_delta: Optional custom expiration time; negative values
            produce an already-expired token

    Returns:
        Encoded JWT token string

    Example:
        >>> token = create_access_token({"sub": user.id, "email": user.email, "name": user.name})
    """
    to_encode = data.copy()
    expire = utc_now() + (expires_delta if expires_delta is not None else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})

    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    logger.debug(f"Access token created for user {data.get('sub')}, expires at: {expire}")
    return encoded_jwt


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Verify and decode a JWT token.

    Returns:
        Decoded token payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info(f"JWT verification failed: {str(e)}")
        return None
    logger.debug(f"Token verified successfully for user: {payload.get('sub')}")
    return payload
