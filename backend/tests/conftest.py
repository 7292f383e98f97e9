"""
Test configuration and fixtures for task tracker tests.

Provides:
- Test database with SQLite in-memory for speed (same connection hooks as production)
- FastAPI test client with database dependency override
- Authentication helpers (JWT token generation)
- Common fixtures for users and tasks
- A statement counter for asserting that a code path never reaches the database
"""

import os
import sys
import logging
from datetime import timedelta
from typing import Callable, Dict, Generator, List, Optional

# Configure the app before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ["CREATE_TABLES"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, create_db_engine, get_db
from main import app
import models
from auth.security import hash_password, create_access_token
from time_utils import utc_now

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite://"

TEST_PASSWORD = "correct-horse-battery"


@pytest.fixture(scope="function")
def test_engine() -> Generator[Engine, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    engine = create_db_engine(SQLALCHEMY_TEST_DATABASE_URL, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def test_db(test_engine: Engine) -> Generator[Session, None, None]:
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def statement_counter(test_engine: Engine) -> Generator[List[str], None, None]:
    """
    Record every SQL statement issued against the test engine.

    Clear the list right before the call under test, then assert on it.
    """
    statements: List[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(test_engine, "before_cursor_execute", _record)
    try:
        yield statements
    finally:
        event.remove(test_engine, "before_cursor_execute", _record)


def create_user(db: Session, name: str, email: str, password: str = TEST_PASSWORD) -> models.User:
    user = models.User(name=name, email=email, password_hash=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.debug(f"Created user {name} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def alice(test_db: Session) -> models.User:
    return create_user(test_db, "Alice Adams", "alice@test.com")


@pytest.fixture(scope="function")
def bob(test_db: Session) -> models.User:
    return create_user(test_db, "Bob Brown", "bob@test.com")


@pytest.fixture(scope="function")
def carol(test_db: Session) -> models.User:
    """A user who neither creates nor is assigned the tasks in most tests."""
    return create_user(test_db, "Carol Clark", "carol@test.com")


@pytest.fixture(scope="function")
def make_task(test_db: Session) -> Callable[..., models.Task]:
    """
    Factory inserting a task directly through the session.

    Timestamps can be passed explicitly so ordering tests do not depend on
    clock resolution.
    """
    def _make(creator: models.User, title: str = "Task", assignee: Optional[models.User] = None, **fields) -> models.Task:
        fields.setdefault("created_at", utc_now())
        fields.setdefault("updated_at", fields["created_at"])
        task = models.Task(
            title=title,
            creator_id=creator.id,
            assignee_id=assignee.id if assignee is not None else None,
            **fields,
        )
        test_db.add(task)
        test_db.commit()
        test_db.refresh(task)
        return task

    return _make


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    token_data = {
        "sub": user.id,
        "email": user.email,
        "name": user.name,
    }
    return create_access_token(token_data, expires_delta)


def auth_headers_for(user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(user)}"}


@pytest.fixture(scope="function")
def alice_headers(alice: models.User) -> Dict[str, str]:
    return auth_headers_for(alice)


@pytest.fixture(scope="function")
def bob_headers(bob: models.User) -> Dict[str, str]:
    return auth_headers_for(bob)


@pytest.fixture(scope="function")
def carol_headers(carol: models.User) -> Dict[str, str]:
    return auth_headers_for(carol)
