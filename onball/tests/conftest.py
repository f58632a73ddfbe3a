"""
Shared fixtures: a throwaway SQLite database per test and a league
service wired to it with the local team partitioner.
"""
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from onball.database import build_engine, build_session_factory, init_models
from onball.schemas.ledger import Actor
from onball.services.activity_logger import ActivityLedger
from onball.services.document_store import SqlDocumentStore
from onball.services.league_service import LeagueService
from onball.services.team_balance_service import TeamBalanceClient


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'onball-test.db'}")
    await init_models(bind=engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory)


@pytest.fixture
def ledger(session_factory) -> ActivityLedger:
    return ActivityLedger(session_factory)


@pytest.fixture
def service(store, ledger) -> LeagueService:
    return LeagueService(store, ledger, team_client=TeamBalanceClient(url="", enabled=False))


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", name="Admin")


@pytest.fixture
def reviewer() -> Actor:
    return Actor(id="rev-2", name="Reviewer Two")
