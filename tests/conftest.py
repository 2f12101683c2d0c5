"""
Pytest configuration and shared fixtures for testing.
"""
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from adaptive_core.core.config import settings
from adaptive_core.core.services import build_in_memory_services
from adaptive_core.main import create_application
from adaptive_core.models.base import Base, build_engine
from tests.factories import FakeClock, blueprint_config, default_pool

TEST_ADMIN_TOKEN = "test-admin-token"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def services(clock):
    """In-memory services with synchronous calibration and the default pool."""
    return build_in_memory_services(
        items=default_pool(),
        blueprints={"bp-1": blueprint_config()},
        clock=clock,
    )


@pytest.fixture
def manager(services):
    return services.sessions


@pytest.fixture
def admin_token(monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_TOKEN", TEST_ADMIN_TOKEN)
    return TEST_ADMIN_TOKEN


@pytest.fixture
def admin_headers(admin_token):
    return {"X-Admin-Token": admin_token}


@pytest.fixture
def client(services):
    """Test client wired to in-memory services."""
    app = create_application(services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sql_session_factory(tmp_path: Path):
    """
    Session factory bound to a fresh SQLite file per test.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
