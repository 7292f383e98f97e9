"""
Database engine, session factory and declarative base.

Configuration:
- DATABASE_URL: SQLAlchemy URL (default: local SQLite file)

SQLite connections get two hooks so the store behaves the same as on
PostgreSQL: foreign keys are enforced (ON DELETE CASCADE / SET NULL), and
lower() folds Unicode case instead of ASCII only.
"""

import logging
import os
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./task_tracker.db")

Base = declarative_base()


def _unicode_lower(value: Optional[str]) -> Optional[str]:
    if isinstance(value, str):
        return value.lower()
    return value


def install_sqlite_hooks(engine: Engine) -> None:
    """
    Register per-connection hooks on a SQLite engine.

    Must be called before the first connection is opened.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    logger.debug("SQLite connection hooks installed")


def create_db_engine(url: str, **kwargs) -> Engine:
    """Create an engine for the given URL, applying dialect-specific setup."""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        db_engine = create_engine(url, connect_args=connect_args, **kwargs)
        install_sqlite_hooks(db_engine)
    else:
        db_engine = create_engine(url, pool_pre_ping=True, **kwargs)
    logger.info(f"Database engine created for dialect: {db_engine.dialect.name}")
    return db_engine


engine = create_db_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
