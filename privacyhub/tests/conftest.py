from __future__ import annotations

import os
import tempfile
from uuid import uuid4

# Point the engine at a throwaway SQLite file before privacyhub modules read settings.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), f'privacyhub-test-{uuid4().hex}.db')}",
)

import pytest

from privacyhub.core.config import get_settings
from privacyhub.domain.models import Base
from privacyhub.persistence.db import engine


@pytest.fixture(autouse=True)
async def database_schema() -> None:
    # Build a fresh schema per test so rows never leak between cases.
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Settings overrides set through monkeypatch must not outlive the test.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
