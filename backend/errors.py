"""
Error taxonomy for the Task Tracker application.

Every failure the engines raise is one of the classes below. Each carries the
envelope code and HTTP status it maps to, so controllers only translate, never
decide.

Store-level failures (SQLAlchemy exceptions) are translated exactly once, at
the Entity Store boundary, by translate_store_error(). The raw driver message
is logged server-side and never reaches the client.
"""

import enum
import logging
import re
from typing import Any, Dict, Optional, Sequence

from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    NoResultFound,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm.exc import ObjectDeletedError, StaleDataError

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class StoreErrorCode(str, enum.Enum):
    UNIQUE_CONSTRAINT_VIOLATION = "UNIQUE_CONSTRAINT_VIOLATION"
    FOREIGN_KEY_CONSTRAINT_VIOLATION = "FOREIGN_KEY_CONSTRAINT_VIOLATION"
    REQUIRED_RELATION_VIOLATION = "REQUIRED_RELATION_VIOLATION"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    DATABASE_CONNECTION_ERROR = "DATABASE_CONNECTION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


STORE_ERROR_MESSAGES = {
    StoreErrorCode.UNIQUE_CONSTRAINT_VIOLATION: "A record with this value already exists",
    StoreErrorCode.FOREIGN_KEY_CONSTRAINT_VIOLATION: "Referenced record does not exist",
    StoreErrorCode.REQUIRED_RELATION_VIOLATION: "The change would violate a required relation",
    StoreErrorCode.RECORD_NOT_FOUND: "The requested record was not found",
    StoreErrorCode.DATABASE_CONNECTION_ERROR: "Failed to connect to the database",
    StoreErrorCode.DATABASE_ERROR: "A database error occurred",
}


class TaskTrackerError(Exception):
    """Base class for every error the application reports to callers."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TaskTrackerError):
    """Malformed or out-of-range input. User-correctable."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 400

    def __init__(self, field: Optional[str], message: str):
        super().__init__(message)
        self.field = field


class NotFoundOrDenied(TaskTrackerError):
    """
    The task does not exist, or it exists and the actor may not touch it.

    The two cases are deliberately indistinguishable: same class, same
    message, same status code.
    """

    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self):
        super().__init__("Task not found or access denied")


class UserNotFoundError(TaskTrackerError):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self):
        super().__init__("User not found")


class ReferenceIntegrityError(TaskTrackerError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 400

    def __init__(self, message: str = "Assigned user does not exist"):
        super().__init__(message)


class StoreError(TaskTrackerError):
    """A translated store failure. See translate_store_error()."""

    def __init__(self, store_code: StoreErrorCode, field: Optional[str] = None):
        super().__init__(STORE_ERROR_MESSAGES[store_code])
        self.store_code = store_code
        self.field = field
        if store_code == StoreErrorCode.UNIQUE_CONSTRAINT_VIOLATION:
            self.code = ErrorCode.VALIDATION_ERROR
            self.status_code = 400
        elif store_code == StoreErrorCode.RECORD_NOT_FOUND:
            self.code = ErrorCode.NOT_FOUND
            self.status_code = 404
        else:
            self.code = ErrorCode.INTERNAL_ERROR
            self.status_code = 500


class AuthenticationError(TaskTrackerError):
    """No credentials were supplied."""

    code = ErrorCode.UNAUTHORIZED
    status_code = 401


class InvalidTokenError(TaskTrackerError):
    """Credentials were supplied but are invalid, expired, or orphaned."""

    code = ErrorCode.FORBIDDEN
    status_code = 403


class InternalError(TaskTrackerError):
    code = ErrorCode.INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str = "An internal error occurred"):
        super().__init__(message)


# SQLite: "UNIQUE constraint failed: users.email"
# PostgreSQL: "... DETAIL:  Key (email)=(a@b.c) already exists."
_CONSTRAINT_COLUMN_PATTERNS = (
    re.compile(r"constraint failed: \w+\.(\w+)"),
    re.compile(r"key \((\w+)\)="),
    re.compile(r'column "(\w+)"'),
)


def _constraint_column(message: str) -> Optional[str]:
    for pattern in _CONSTRAINT_COLUMN_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


def translate_store_error(exc: Exception) -> StoreError:
    """
    Map a SQLAlchemy exception onto the stable store error taxonomy.

    Args:
        exc: exception raised by the session, engine or driver

    Returns:
        StoreError carrying a StoreErrorCode and a fixed client-safe message
    """
    if isinstance(exc, IntegrityError):
        raw = str(exc.orig).lower()
        if "unique" in raw or "duplicate key" in raw:
            store_code = StoreErrorCode.UNIQUE_CONSTRAINT_VIOLATION
            field = _constraint_column(raw)
        elif "foreign key" in raw:
            store_code = StoreErrorCode.FOREIGN_KEY_CONSTRAINT_VIOLATION
            field = None
        elif "not null" in raw or "null value" in raw:
            store_code = StoreErrorCode.REQUIRED_RELATION_VIOLATION
            field = _constraint_column(raw)
        else:
            store_code = StoreErrorCode.DATABASE_ERROR
            field = None
        logger.info(f"Integrity error translated to {store_code.value}: {raw}")
        return StoreError(store_code, field=field)

    if isinstance(exc, (StaleDataError, ObjectDeletedError, NoResultFound)):
        logger.info(f"Record vanished during write: {exc}")
        return StoreError(StoreErrorCode.RECORD_NOT_FOUND)

    if isinstance(exc, OperationalError) or (isinstance(exc, DBAPIError) and exc.connection_invalidated):
        logger.error(f"Database connection error: {exc}")
        return StoreError(StoreErrorCode.DATABASE_CONNECTION_ERROR)

    if isinstance(exc, SQLAlchemyError):
        logger.error(f"Unclassified database error: {exc}")
        return StoreError(StoreErrorCode.DATABASE_ERROR)

    logger.error(f"Non-database exception passed to store error translation: {exc!r}")
    return StoreError(StoreErrorCode.DATABASE_ERROR)


def validation_error_from_pydantic(errors: Sequence[Dict[str, Any]], messages: Optional[Dict[str, str]] = None) -> ValidationError:
    """
    Build a ValidationError from the first entry of a pydantic error list.

    Args:
        errors: pydantic ``exc.errors()`` output (request or model validation)
        messages: optional per-field message overrides, keyed by wire name

    Returns:
        ValidationError naming the failing field
    """
    if not errors:
        return ValidationError(None, "Invalid request")

    first = errors[0]
    if first.get("type") == "json_invalid":
        return ValidationError(None, "Request body is not valid JSON")

    # Integer entries are list indexes or JSON offsets, not field names
    location = [part for part in first.get("loc", ()) if isinstance(part, str) and part not in ("body", "query", "path")]
    field = location[0] if location else None

    if messages and field in messages:
        return ValidationError(field, messages[field])

    # Messages raised by our own validators are already phrased for clients
    error = (first.get("ctx") or {}).get("error")
    if first.get("type") == "value_error" and error is not None:
        return ValidationError(field, str(error))

    message = first.get("msg", "Invalid value")
    if field:
        message = f"{field}: {message}"
    return ValidationError(field, message)
