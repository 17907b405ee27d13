from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Must be set before packages.db.database is imported anywhere.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{(Path(tempfile.gettempdir()) / 'amc_measures_test.db').as_posix()}",
)

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from packages.db.database import create_db_engine
from packages.db.models import Base
from packages.db.query import QueryExecutor


@pytest.fixture
def db_session():
    """Fresh in-memory database with every table created."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = Session(bind=engine)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def executor(db_session):
    return QueryExecutor(db_session)
