"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

os.environ.setdefault("PROG_STORE_BACKEND", "memory")
os.environ.setdefault("PROG_LOG_FORMAT", "console")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from progression.config import Settings, get_settings
from progression.gamification.catalog import DEFAULT_ACHIEVEMENTS, AchievementCatalog
from progression.gamification.engine import ProgressionEngine
from progression.integrity.sweep import IntegritySweep
from progression.main import create_app
from progression.storage import close_storage, get_backend, init_storage
from progression.store.backend import InMemoryBackend


@pytest.fixture
def settings() -> Settings:
    return Settings(store_backend="memory", store_timeout_seconds=2.0, store_max_retries=5)


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def catalog() -> AchievementCatalog:
    return AchievementCatalog.from_dicts(DEFAULT_ACHIEVEMENTS)


@pytest.fixture
def engine(backend: InMemoryBackend, catalog: AchievementCatalog, settings: Settings) -> ProgressionEngine:
    return ProgressionEngine(backend, catalog, settings)


@pytest.fixture
def sweep(backend: InMemoryBackend, settings: Settings) -> IntegritySweep:
    return IntegritySweep(backend, settings)


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client over a fresh in-memory store."""
    get_settings.cache_clear()
    app = create_app()
    # ASGITransport does not run the lifespan, so storage is initialized here.
    await init_storage(get_settings())

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await close_storage()


@pytest.fixture
def store_backend(client: AsyncClient) -> InMemoryBackend:
    """The backend behind `client`, for seeding and assertions."""
    return get_backend()
