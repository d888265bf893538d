"""Pytest configuration and fixtures for the cabin selection scheduler tests."""
import os

# must be set before cabinsched.db builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cabinsched import models_db  # noqa: F401  (registers tables)
from cabinsched.changes import ChangeFeed, reminder_cache
from cabinsched.db import Base, get_db
from cabinsched.main import app


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def client(session_factory):
    """API client whose requests run against the test database."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    reminder_cache.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()
    reminder_cache.clear()


@pytest.fixture
def today():
    return date(2025, 9, 20)


@pytest.fixture
def now(today):
    return datetime(today.year, today.month, today.day, 8, 30)
