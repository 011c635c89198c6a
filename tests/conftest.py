"""
Pytest fixtures for testing
"""
import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from sqlalchemy.dialects.postgresql import JSONB

from app.infrastructure.db.session import Base
import app.infrastructure.db.models  # noqa: F401


def _remap_jsonb():
    # SQLite doesn't support JSONB: remap to JSON for tests
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, JSONB):
                col.type = JSON()


@pytest.fixture
def db_engine():
    """Create in-memory SQLite engine for tests, with JSONB→JSON mapping."""
    # StaticPool: one shared connection, so TestClient worker threads see the same database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _remap_jsonb()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Session:
    """Create database session for tests"""
    SessionLocal = sessionmaker(bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def card(db_session):
    """Card closing on the 25th, due on the 10th."""
    from app.application.cards import CreateCreditCardUseCase
    from app.infrastructure.db.models import CreditCardModel

    card_id = CreateCreditCardUseCase(db_session).execute(
        name="Visa Galicia", bank="Galicia", closing_day=25, due_day=10, last4="1234",
    )
    return db_session.get(CreditCardModel, card_id)
