# =============================================================================
# Shared Test Fixtures
# =============================================================================
#
# `store` is a KnowledgeStore on a file-backed SQLite database under
# tmp_path. NullPool means no connection outlives the event loop that
# opened it, so tests can drive the store with asyncio.run() and through
# FastAPI's TestClient alike.
# =============================================================================

from __future__ import annotations

import asyncio

import pytest

from app.db.engine import create_engine_for_url, create_session_factory, create_tables
from app.services.store import KnowledgeStore


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'knowledge.db'}"


@pytest.fixture
def store(database_url):
    engine = create_engine_for_url(database_url, use_null_pool=True)
    asyncio.run(create_tables(engine))
    yield KnowledgeStore(create_session_factory(engine))
    asyncio.run(engine.dispose())
