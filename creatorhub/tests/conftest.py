"""Pytest configuration for creatorhub integration tests

WHAT: Shared fixtures for HTTP endpoint and service-level tests
WHY: Every test gets its own in-memory database, its own app instance and
     mocked payment/email providers, so nothing leaves the process.
REFERENCES:
    - creatorhub/main.py: FastAPI application
    - creatorhub/database.py: Database configuration
    - creatorhub/deps.py: Dependency injection (providers overridden here)
"""

import os
from datetime import datetime
from typing import Generator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment before creatorhub modules read it at import time
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from creatorhub.database import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Provider Mocks
# ============================================================================

@pytest.fixture
def polar_client():
    """PolarClient double; every call succeeds with canned payloads."""
    client = MagicMock()
    client.configured = True
    client.create_product = AsyncMock(return_value={"id": "prod_123"})
    client.update_product = AsyncMock(return_value={"id": "prod_123"})
    client.archive_product = AsyncMock(return_value={"id": "prod_123", "is_archived": True})
    client.create_customer = AsyncMock(return_value={"id": "cus_123"})
    client.create_checkout = AsyncMock(
        return_value={"id": "chk_123", "url": "https://checkout.polar.sh/chk_123"}
    )
    client.create_customer_portal_session = AsyncMock(return_value="https://polar.sh/portal/cus_123")
    client.set_cancel_at_period_end = AsyncMock(return_value={"id": "sub_polar_1"})
    return client


@pytest.fixture
def resend_client():
    """ResendClient double; send_email returns a message id."""
    client = MagicMock()
    client.configured = True
    client.send_email = MagicMock(return_value="msg_123")
    return client


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session, polar_client, resend_client):
    """FastAPI test application wired to the test session and provider mocks."""
    from creatorhub.database import get_db
    from creatorhub.deps import Settings, get_polar_client, get_resend_client, get_settings
    from creatorhub.main import create_app

    test_app = create_app()

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_polar_client] = lambda: polar_client
    test_app.dependency_overrides[get_resend_client] = lambda: resend_client
    # No webhook secrets (dev mode) and no delay between email batches
    test_app.dependency_overrides[get_settings] = lambda: Settings(
        POLAR_WEBHOOK_SECRET="",
        RESEND_WEBHOOK_SECRET="",
        EMAIL_BATCH_DELAY_SECONDS=0,
        SENTRY_DSN=None,
    )
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def login_as(client):
    """Return a helper that attaches a session cookie for a user to `client`."""
    from creatorhub.security import create_access_token

    def _login(user) -> TestClient:
        client.cookies.set("access_token", create_access_token(user.email))
        return client

    return _login


# ============================================================================
# Model Fixtures
# ============================================================================

def _make_user(db: Session, email: str, name: str, role):
    from creatorhub.models import User

    user = User(id=uuid4(), email=email, name=name, role=role, created_at=datetime.utcnow())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def creator(test_db_session):
    from creatorhub.models import RoleEnum

    return _make_user(test_db_session, "creator@example.com", "Casey Creator", RoleEnum.creator)


@pytest.fixture
def other_creator(test_db_session):
    """Second creator (for ownership tests)."""
    from creatorhub.models import RoleEnum

    return _make_user(test_db_session, "other@example.com", "Olly Other", RoleEnum.creator)


@pytest.fixture
def reader(test_db_session):
    from creatorhub.models import RoleEnum

    return _make_user(test_db_session, "reader@example.com", "Riley Reader", RoleEnum.subscriber)


@pytest.fixture
def admin(test_db_session):
    from creatorhub.models import RoleEnum

    return _make_user(test_db_session, "admin@example.com", "Ada Admin", RoleEnum.admin)


@pytest.fixture
def creator_client(login_as, creator) -> TestClient:
    return login_as(creator)


@pytest.fixture
def subscribers(test_db_session):
    """Three active newsletter subscribers, one tagged `vip`."""
    from creatorhub.stores.subscribers import SubscriberStore

    store = SubscriberStore(test_db_session)
    return [
        store.create("ann@example.com", "Ann", tags=["vip"]),
        store.create("bob@example.com", "Bob"),
        store.create("cat@example.com", None),
    ]
