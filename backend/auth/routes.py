"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration
- Login (JWT access token)
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

import schemas
import user_service
from auth.security import create_access_token
from database import get_db
from errors import AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=schemas.ApiResponse[schemas.User],
    status_code=status.HTTP_201_CREATED,
)
async def register(request: schemas.UserRegistration, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Raises:
        ValidationError: 400 if the email is already registered
    """
    user = user_service.register_user(db, request)
    return schemas.ApiResponse(data=user)


@router.post("/login", response_model=schemas.ApiResponse[schemas.TokenResponse])
async def login(request: schemas.UserLogin, db: Session = Depends(get_db)):
    """
    Login with email and password.

    Returns:
        Access token for API requests

    Raises:
        AuthenticationError: 401 if the credentials are invalid
    """
    logger.info(f"Login attempt for email: {request.email}")

    user = user_service.authenticate_user(db, request.email, request.password)
    if user is None:
        raise AuthenticationError("Invalid email or password")

    access_token = create_access_token({"sub": user.id, "email": user.email, "name": user.name})

    logger.info(f"User logged in successfully: {user.id}")
    return schemas.ApiResponse(data=schemas.TokenResponse(access_token=access_token))
