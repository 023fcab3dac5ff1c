"""
Pytest configuration and shared fixtures.

Environment defaults are set here, before any app import, so settings
pick them up. Variables already present in the environment win.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_relay.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SCOPE_ID", "support")

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings
get_settings.cache_clear()

from app.main import app
from app.storage import SessionLocal, Base, engine


SCOPE_ID = os.environ["SCOPE_ID"]


def ts(minute: int, second: int = 0) -> str:
    """Normalized timestamp on a fixed test day."""
    return f"2025-01-15T10:{minute:02d}:{second:02d}.000000Z"


def make_payload(
    conversation_id: str = "t1",
    content: str = "Hello",
    created_at: str = None,
    author: str = "alice",
    author_id: str = "u-alice",
    respondent: bool = None,
    scope: str = SCOPE_ID,
    **extra,
) -> dict:
    """Build an ingestion payload in the listener's camelCase format."""
    payload = {
        "author": author,
        "authorId": author_id,
        "content": content,
        "createdAt": created_at or ts(0),
        "conversationId": conversation_id,
    }
    if scope is not None:
        payload["groupParentId"] = scope
    if respondent is not None:
        payload["isFromRespondent"] = respondent
    payload.update(extra)
    return payload


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Session on a fresh schema, for tests that talk to the store directly."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def post_message(client):
    """Post a payload and assert it was stored; returns the assigned id."""
    def _post(**kwargs) -> int:
        response = client.post("/messages", json=make_payload(**kwargs))
        assert response.status_code == 201, response.text
        return response.json()["id"]
    return _post
