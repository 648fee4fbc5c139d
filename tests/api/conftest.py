"""Pytest fixtures for API tests.

Provides test client, database session, and orchestrator fixtures
for testing FastAPI endpoints.
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from procureflow.api.dependencies import get_orchestrator_dependencies
from procureflow.api.main import app
from procureflow.db.connection import get_db
from procureflow.db.models import Base
from procureflow.services.conversation_handler import OrchestratorDependencies
from tests.helpers import FakeCompletionProvider


@pytest.fixture
def test_db() -> Generator[Session, None, None]:
    """Create an in-memory SQLite database for testing.

    Creates all tables, yields a session, and cleans up after test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def completion_provider() -> FakeCompletionProvider:
    return FakeCompletionProvider(["Happy to help with your purchasing."])


@pytest.fixture
def orchestrator_deps(completion_provider) -> OrchestratorDependencies:
    """Offline collaborators: fake completions, moderation off, no cache."""
    return OrchestratorDependencies(completion_provider=completion_provider)


@pytest.fixture
def client(
    test_db: Session, orchestrator_deps: OrchestratorDependencies
) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden database and orchestrator dependencies.

    Args:
        test_db: Test database session fixture.
        orchestrator_deps: Collaborators injected into chat turns.

    Yields:
        TestClient configured for testing.
    """

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator_dependencies] = lambda: orchestrator_deps
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers() -> dict[str, str]:
    return {"X-User-Id": "user-1"}
