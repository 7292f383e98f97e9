"""
User Service: registration, authentication, profile and account management.

Emails are lowercased before every write and lookup. Callers only ever get
schemas.User projections back; password hashes stay inside this module.
"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

import models
import schemas
from auth.security import hash_password, verify_password
from errors import UserNotFoundError, ValidationError
from store import UserStore

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def register_user(db: Session, payload: schemas.UserRegistration) -> schemas.User:
    """
    Create a new user account.

    Args:
        db: Database session
        payload: validated registration data

    Returns:
        The created user

    Raises:
        ValidationError: if the email is already registered
        StoreError: if a concurrent registration wins the unique index
    """
    email = normalize_email(payload.email)
    logger.info(f"Registration attempt for email: {email}")

    store = UserStore(db)
    if store.email_taken(email):
        logger.info(f"Registration failed: email already exists: {email}")
        raise ValidationError("email", "Email already registered")

    user = store.add(
        models.User(
            email=email,
            name=payload.name,
            password_hash=hash_password(payload.password),
        )
    )

    logger.info(f"User registered successfully: {user.email} (ID: {user.id})")
    return schemas.User.model_validate(user)


def authenticate_user(db: Session, email: str, password: str) -> Optional[schemas.User]:
    """Return the user if the credentials match, otherwise None."""
    user = UserStore(db).get_by_email(normalize_email(email))
    if user is None:
        logger.info("Login failed: unknown email")
        return None
    if not verify_password(password, user.password_hash):
        logger.info(f"Login failed: wrong password for user {user.id}")
        return None
    return schemas.User.model_validate(user)


def get_user(db: Session, user_id: str) -> Optional[schemas.User]:
    user = UserStore(db).get(user_id)
    return schemas.User.model_validate(user) if user is not None else None


def get_user_by_email(db: Session, email: str) -> Optional[schemas.User]:
    user = UserStore(db).get_by_email(normalize_email(email))
    return schemas.User.model_validate(user) if user is not None else None


def update_user(db: Session, user_id: str, payload: schemas.UserUpdate) -> schemas.User:
    """
    Change a user's name and/or email.

    Raises:
        UserNotFoundError: if the user does not exist
        ValidationError: if the new email belongs to another user
    """
    logger.info(f"Updating profile of user {user_id}")

    store = UserStore(db)
    user = store.get(user_id)
    if user is None:
        raise UserNotFoundError()

    update_data = payload.model_dump(exclude_unset=True)
    if "email" in update_data:
        update_data["email"] = normalize_email(update_data["email"])
        if store.email_taken(update_data["email"], exclude_user_id=user_id):
            logger.info(f"Profile update rejected: email already exists: {update_data['email']}")
            raise ValidationError("email", "Email already registered")

    for key, value in update_data.items():
        setattr(user, key, value)
    store.save(user)

    logger.info(f"User {user_id} updated: fields={sorted(update_data)}")
    return schemas.User.model_validate(user)


def list_users(db: Session) -> List[schemas.User]:
    """All users ordered by name, for assignment pickers."""
    return [schemas.User.model_validate(user) for user in UserStore(db).list_all()]


def delete_user(db: Session, user_id: str) -> None:
    """
    Delete a user account.

    Tasks the user created are deleted with it; tasks assigned to the user
    become unassigned.

    Raises:
        UserNotFoundError: if the user does not exist
    """
    store = UserStore(db)
    user = store.get(user_id)
    if user is None:
        raise UserNotFoundError()

    store.delete(user)
    logger.info(f"User {user_id} deleted")
