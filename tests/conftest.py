"""Shared fixtures: in-memory database and raw insight rows."""

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Imported for table registration on SQLModel.metadata
from adledger.models import fact_models, raw_models, structure_models  # noqa: F401


@pytest.fixture
def engine():
    """Fresh in-memory SQLite engine shared across sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


@pytest.fixture
def raw_row():
    """Ad-level insight row as Meta returns it."""
    return {
        "account_id": "act_123",
        "campaign_id": "c1",
        "adset_id": "s1",
        "ad_id": "a1",
        "date_start": "2026-03-01",
        "date_stop": "2026-03-01",
        "impressions": "1000",
        "clicks": "50",
        "spend": "100.00",
        "reach": "800",
        "frequency": "1.25",
        "actions": [
            {"action_type": "link_click", "value": "45"},
            {"action_type": "purchase", "value": "5"},
        ],
        "action_values": [{"action_type": "purchase", "value": "250.00"}],
    }
