import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from data_sources import cache
from data_sources.auth_client import AuthenticatedUser
from data_sources.database import Base


@pytest.fixture(autouse=True)
def _clear_cache(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    cache.clear_cache()
    yield
    cache.clear_cache()


@pytest.fixture
def db_session():
    """In-memory SQLite session with the ORM tables created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, future=True)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def user():
    return AuthenticatedUser(id="11111111-1111-1111-1111-111111111111", email="hiker@example.com")


def make_response(status_code=200, json_data=None, reason="OK", headers=None):
    """requests.Response stand-in for mocked HTTP calls."""
    from unittest.mock import MagicMock

    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = reason
    response.headers = headers or {}
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response
