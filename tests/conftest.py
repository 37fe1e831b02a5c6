"""Pytest configuration and fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base
from app.errors import StoreError
from app.schemas.generation import ChannelTemplate
from app.services.run_store import SqlRunStore


class FakeLLMClient:
    """Stands in for LLMClient; replays canned responses in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def complete(self, request):
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FailingStore:
    """Run store whose writes always fail."""

    def __init__(self, fail_create=False):
        self.fail_create = fail_create
        self.inner = None
        self.calls = {"create_run": 0, "update_run": 0, "append_event": 0}

    def create_run(self, init):
        self.calls["create_run"] += 1
        if self.fail_create:
            raise StoreError("database unavailable")
        return self.inner.create_run(init)

    def update_run(self, run_id, patch):
        self.calls["update_run"] += 1
        raise StoreError("database unavailable")

    def append_event(self, event, counters=None):
        self.calls["append_event"] += 1
        raise StoreError("database unavailable")


@pytest.fixture(scope="function")
def session_factory():
    """Session factory over a fresh in-memory database."""
    # StaticPool keeps one connection so TestClient threads see the same data
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()
    yield db
    db.close()


@pytest.fixture
def store(session_factory):
    return SqlRunStore(session_factory)


@pytest.fixture
def failing_store(store):
    failing = FailingStore()
    failing.inner = store
    return failing


@pytest.fixture
def fake_llm():
    return FakeLLMClient


@pytest.fixture
def channel():
    return ChannelTemplate(
        id="ch-1",
        name="Mountain Shorts",
        description="Calm nature clips",
        language="ru",
        duration_seconds=8,
        idea_prompt_template="Ideas for {{DURATION}}s videos in {{LANGUAGE}}. Style: {{DESCRIPTION}}",
        video_prompt_template="Video about {{IDEA_TEXT}} ({{IDEA_TITLE}} / {{IDEA_DESCRIPTION}}), {{DURATION}}s, {{LANGUAGE}}",
        automation_enabled=True,
    )
