"""
Root test configuration and fixtures.

Provides:
- connector_env: Shopify/NCF Manager settings for every test
- db_engine / db_session: SQLite in-memory database with all tables
- make_ncf_client: factory for mocked NCF Manager clients
"""

import os
import pytest
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from ncf_connector.config.settings import reset_settings

# Set test environment
os.environ.setdefault("ENV", "test")

TEST_API_KEY = "test-api-key"
TEST_API_SECRET = "test-api-secret"
TEST_NCF_MANAGER_URL = "https://ncf.test"
TEST_APP_URL = "https://connector.test"


@pytest.fixture(autouse=True)
def connector_env(monkeypatch):
    """Point settings at test credentials and reload them around each test."""
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("SHOPIFY_API_KEY", TEST_API_KEY)
    monkeypatch.setenv("SHOPIFY_API_SECRET", TEST_API_SECRET)
    monkeypatch.setenv("NCF_MANAGER_URL", TEST_NCF_MANAGER_URL)
    monkeypatch.setenv("SHOPIFY_APP_URL", TEST_APP_URL)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def db_engine():
    """
    Create a fresh SQLite in-memory database per test.

    Services commit their own transactions, so isolation comes from a new
    engine rather than an outer rollback.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import and create all tables
    from ncf_connector.db_base import Base
    from ncf_connector.models import shop, shopify_session  # noqa: F401

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    """Session bound to the per-test database."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def test_shop_domain():
    """Test shop domain."""
    return "test-store.myshopify.com"


@pytest.fixture
def make_ncf_client():
    """
    Factory for a mocked NCF Manager client usable as `async with factory() as client`.

    Usage:
        client, factory = make_ncf_client()
        client.get_shop_plan.return_value = PlanSnapshot(...)
    """
    def _make():
        client = MagicMock()
        client.get_shop_plan = AsyncMock()
        client.sync_token = AsyncMock()
        client.notify_billing = AsyncMock()
        client.forward_order = AsyncMock()
        client.__aenter__ = AsyncMock(return_value=client)
        client.__aexit__ = AsyncMock(return_value=False)
        factory = MagicMock(return_value=client)
        return client, factory
    return _make


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: mark test as slow-running")
