"""Root-level pytest fixtures for all tests.

Provides shared fixtures including:
- Database fixtures (in-memory SQLite)
- Catalog item factory
"""

import os

# Must be set before procureflow.db.connection builds its module engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from procureflow.db.models import Base, Item, ItemStatus, decimal_to_cents


# ============================================================================
# Pytest Markers
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring external services"
    )


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared across sessions of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    """Session bound to the in-memory engine."""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# Catalog Fixtures
# ============================================================================


@pytest.fixture
def make_item(db_session: Session) -> Callable[..., Item]:
    """Factory that inserts a catalog item and commits it.

    Usage:
        widget = make_item(name="Widget", price="10.00")
    """

    def _make(
        name: str = "Ergonomic Office Chair",
        category: str = "Furniture",
        description: str = "Adjustable mesh chair with lumbar support",
        price: str | Decimal = "199.99",
        status: ItemStatus = ItemStatus.active,
    ) -> Item:
        item = Item(
            name=name,
            category=category,
            description=description,
            price_cents=decimal_to_cents(price),
            status=status.value,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make

