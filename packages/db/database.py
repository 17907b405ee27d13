"""
SQLAlchemy database engine and session management.

The AMC API, the worker loop and its heartbeat thread each open their own
sessions against the same store, so SQLite connections are built to wait on
a busy database instead of failing immediately.
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from packages.shared.settings import sql_echo_enabled, sqlite_busy_timeout

logger = logging.getLogger("amc.db")


def normalize_database_url(url: str) -> str:
    """SQLAlchemy 2.0 only accepts the `postgresql://` scheme (Render and Heroku hand out `postgres://`)."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def create_db_engine(url: str, **kwargs: Any) -> Engine:
    """Engine for `url` with the connection arguments its backend needs."""
    url = normalize_database_url(url)
    connect_args = dict(kwargs.pop("connect_args", {}))
    if url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", sqlite_busy_timeout())
    kwargs.setdefault("echo", sql_echo_enabled())
    return create_engine(url, connect_args=connect_args, **kwargs)


DATABASE_URL = normalize_database_url(os.environ.get("DATABASE_URL", "sqlite:///amc_reports.db"))

engine = create_db_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db() -> None:
    """Create the EHR and run-queue tables that are missing (idempotent)."""
    from packages.db.models import Base  # noqa: F811
    Base.metadata.create_all(bind=engine)
    logger.info(
        f"Database ready on {engine.url.get_backend_name()} "
        f"({len(Base.metadata.tables)} tables)"
    )


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context manager that yields a DB session and handles commit/rollback."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with get_session() as session:
        yield session
