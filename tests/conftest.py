"""
Pytest configuration and fixtures for smsauth tests.

Every test gets its own in-memory SQLite database, a frozen clock and
fresh stores, so no state leaks between tests.
"""
import os

# Settings are read at import time
os.environ.setdefault("ENV", "test")
os.environ.setdefault("OTP_PROVIDER", "stub")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from smsauth.core.clock import FrozenClock  # noqa: E402
from smsauth.db import Base  # noqa: E402
from smsauth.models import User  # noqa: E402
from smsauth.services.auth.attempt_log import InMemoryAttemptLog  # noqa: E402
from smsauth.services.auth.rate_limit import LockoutPolicy, PolicyTable, RateLimiter, RateLimitPolicy  # noqa: E402
from smsauth.services.auth.stub_provider import StubVerificationProvider  # noqa: E402
from smsauth.services.auth.verification_session import VerificationSessionRegistry  # noqa: E402
from smsauth.services.auth.window_store import InMemoryWindowStore  # noqa: E402
from smsauth.services.user_lookup import SQLAlchemyUserLookup  # noqa: E402
from smsauth.services.verification_service import VerificationCoordinator  # noqa: E402

KNOWN_PHONE = "+15155551234"
UNKNOWN_PHONE = "+15155559999"


@pytest.fixture
def engine():
    """In-memory SQLite shared across threads via StaticPool."""
    test_engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    from smsauth import models  # noqa: F401  registers models with Base

    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def known_user(db):
    user = User(phone=KNOWN_PHONE, first_name="Test", last_name="User")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def policies():
    return PolicyTable(
        send_ip=RateLimitPolicy.per_seconds(5, 900),
        send_phone=RateLimitPolicy.per_seconds(3, 3600),
        verify=RateLimitPolicy.per_seconds(5, 900),
        verify_lockout=LockoutPolicy(max_attempts=5, window=timedelta(minutes=15), lockout=timedelta(minutes=30)),
        register_verify_success=RateLimitPolicy.per_seconds(3, 3600),
    )


@pytest.fixture
def window_store():
    return InMemoryWindowStore(sweep_probability=0)


@pytest.fixture
def attempt_log():
    return InMemoryAttemptLog()


@pytest.fixture
def provider():
    return StubVerificationProvider(allowlist="")


@pytest.fixture
def coordinator_factory(window_store, attempt_log, provider, session_factory, policies, clock):
    """Build a coordinator; keyword overrides replace individual collaborators."""

    def _build(**overrides):
        kwargs = dict(
            rate_limiter=RateLimiter(window_store, clock=clock),
            attempt_log=attempt_log,
            provider=provider,
            user_lookup=SQLAlchemyUserLookup(session_factory),
            sessions=VerificationSessionRegistry(ttl=timedelta(minutes=10)),
            policies=policies,
            clock=clock,
        )
        kwargs.update(overrides)
        return VerificationCoordinator(**kwargs)

    return _build


@pytest.fixture
def coordinator(coordinator_factory):
    return coordinator_factory()


@pytest.fixture
def client(coordinator):
    """TestClient wired to the per-test coordinator. Lifespan is not run."""
    from smsauth.dependencies import get_coordinator
    from smsauth.main import app

    app.dependency_overrides[get_coordinator] = lambda: coordinator
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
