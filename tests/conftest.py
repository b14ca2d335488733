"""
Pytest configuration and fixtures.
"""

from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tests.test_constants import TEST_INTERNAL_JOB_TOKEN

# Force an in-memory test DB when pytest runs; don't inherit from .env
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCORING_CONFIG_VERSION"] = "v2"
os.environ.setdefault("INTERNAL_JOB_TOKEN", TEST_INTERNAL_JOB_TOKEN)


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client."""
    from app.main import app

    return TestClient(app)


@pytest.fixture
def client_with_db(db: Session) -> TestClient:
    """TestClient with get_db overridden to use the test db session."""
    from app.db.session import get_db
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    c = TestClient(app)
    yield c
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def _clear_scoring_config_cache() -> None:
    """Clear lru_cache on the scoring config loader before and after each test.

    Tests that patch SCORING_CONFIG_VERSION or the versions directory must not
    leak a cached config into later tests.
    """
    from app.scoring_config.loader import load_scoring_config

    load_scoring_config.cache_clear()
    yield
    load_scoring_config.cache_clear()


@pytest.fixture(scope="session")
def _create_schema() -> None:
    """Create all tables once per test session."""
    import app.models  # noqa: F401
    from app.db.session import Base, engine

    Base.metadata.create_all(engine)


@pytest.fixture
def db(_create_schema: None) -> Session:
    """Database session for service tests. All changes are rolled back after each test."""
    from app.db import engine

    connection = engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def config():
    """Scoring config v2 (the pinned regression scenarios are computed against it)."""
    from app.scoring_config import load_scoring_config

    return load_scoring_config("v2")
