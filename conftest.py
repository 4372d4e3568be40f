"""
Shared pytest fixtures.

The tests run against an in-memory SQLite database and the in-memory
cache fallback, so neither PostgreSQL nor Redis is needed.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:1"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["EMAIL_FROM"] = ""
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

import app.models  # noqa: F401
from app.core.cache import redis_cache
from app.core.database import SessionLocal, drop_db, get_db, init_db
from app.main import app as fastapi_app
from app.models.user import User
from app.services.market_data import market_data_service


@pytest.fixture(autouse=True)
def fresh_database():
    init_db()
    redis_cache.redis_client.flushdb()
    yield
    market_data_service.unpin_price()
    redis_cache.redis_client.flushdb()
    drop_db()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client(db):
    """API client whose requests share the test's session."""
    def override_get_db():
        yield db

    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield TestClient(fastapi_app)
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Factory for users with a known balance and leverage."""
    counter = {"n": 0}

    def factory(name: str = None, balance: float = 10000.0, leverage: int = 50, **fields) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"Trader {counter['n']}",
            email=f"trader{counter['n']}@example.com",
            account_balance=balance,
            available_margin=balance,
            leverage=leverage,
            **fields,
        )
        db.add(user)
        db.flush()
        return user

    return factory
