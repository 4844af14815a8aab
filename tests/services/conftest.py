"""Service test fixtures — async DB, fake providers, FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db, provider registry, web content, token verifier and settings are
      overridden with dependency_overrides (ASGITransport does not run the lifespan)
    - db_manager patched so the readiness probe sees the test engine

Design Decisions:
    - SQLite in-memory: fast, no external dependency, sufficient for route tests
      (PostgreSQL-specific features not exercised here)
    - Fakes live in fake_providers.py so tests can import and configure them
"""

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from httpx import ASGITransport, AsyncClient

from meshmind.api.deps import (
    get_provider_registry, get_token_verifier, get_web_content_service,
)
from meshmind.config import get_settings
from meshmind.db.base import Base
from meshmind.infrastructure.database import get_db, DatabaseSessionManager
from meshmind.infrastructure.token_verifier import JWTTokenVerifier
import meshmind.infrastructure.database as db_module
import meshmind.models  # noqa: F401
from meshmind.main import app

from tests.services.fake_providers import (
    TEST_JWT_SECRET, FakeProvider, FakeWebContent, make_registry,
)


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def test_settings():
    """Process settings with known fallback keys and sequential execution."""
    return get_settings().model_copy(update={
        "openrouter_api_key": "env-openrouter-key",
        "vercel_ai_gateway_key": "env-vercel-key",
        "anthropic_api_key": "env-anthropic-key",
        "mesh_execution_mode": "sequential",
        "mesh_agent_timeout_seconds": 5.0,
    })


@pytest.fixture
def providers():
    """One FakeProvider per supported provider tag."""
    return {
        "openrouter": FakeProvider(["openrouter reply"]),
        "vercel": FakeProvider(["vercel reply"]),
        "anthropic": FakeProvider(["anthropic reply"]),
    }


@pytest.fixture
def web_content():
    return FakeWebContent()


@pytest.fixture
async def client(
    test_engine, test_session_factory, test_settings, providers, web_content,
):
    """FastAPI test client with every collaborator overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    registry = make_registry(**providers)
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_provider_registry] = lambda: registry
    app.dependency_overrides[get_web_content_service] = lambda: web_content
    app.dependency_overrides[get_token_verifier] = (
        lambda: JWTTokenVerifier(TEST_JWT_SECRET)
    )

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
