"""
PersonalPage Backend — Test Configuration (conftest.py)
=========================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own in-memory SQLite database (aiosqlite), its own
       upload directory, a stub text generator and a fresh AppContext; the
       HTTP client talks to the app through httpx's ASGITransport.

Fixture Hierarchy (all function-scoped):
    temp_storage ─┐
                  ├─▶ test_settings ─▶ db_engine ─▶ db_session
    stub_generator┘                        │
                                           ▼
                                      app_context ─▶ app ─▶ test_client
                                                         └─▶ other_client
"""

import os
import tempfile
from typing import List, Optional, Union

# Override settings for testing BEFORE any app imports; the module-level
# Settings() in personalpage.config reads these
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="personalpage_test_")
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from personalpage.config import Settings
from personalpage.context import build_context
from personalpage.database import build_session_factory, create_schema
from personalpage.services.text_generation import TextGenerator


# Smallest byte strings that start like the real formats; nothing sniffs
# the content, only names and declared types are checked
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00\xff\xd9"


class StubTextGenerator(TextGenerator):
    """
    Scripted TextGenerator.

    `replies` is consumed in order; an Exception entry is raised instead of
    returned. When the script runs out, a fixed echo-style reply is used.
    """

    name = "stub"

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None):
        self.replies = list(replies or [])
        self.prompts: List[str] = []
        self.closed = False

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if self.replies else prompt + " The stars say yes."
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self) -> None:
        self.closed = True


# ══════════════════════════════════════════════════════════════════════════
# Configuration & Storage
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """A fresh upload directory per test (cleaned up by pytest)."""
    storage_dir = tmp_path / "uploads"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def test_settings(temp_storage) -> Settings:
    """
    Settings tuned for speed and determinism:
        - bcrypt_rounds=4 (the minimum) keeps hashing in the microseconds
        - one oracle attempt, no backoff waits
        - a rate limit high enough never to trip by accident
    """
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        storage_root=temp_storage,
        bcrypt_rounds=4,
        avatar_backend="local",
        oracle_provider="gemini",
        gemini_api_key="test-key-not-real",
        retry_max_attempts=1,
        retry_min_wait=0,
        retry_max_wait=0,
        cb_failure_threshold=3,
        cb_recovery_timeout=60,
        rate_limit_requests=1000,
        log_level="WARNING",
    )


@pytest.fixture
def sample_png_bytes():
    return PNG_BYTES


@pytest.fixture
def sample_jpeg_bytes():
    return JPEG_BYTES


@pytest.fixture
def stub_generator():
    return StubTextGenerator()


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(test_settings):
    """
    In-memory SQLite engine with the schema created.

    StaticPool keeps a single connection, so every session in the test
    sees the same in-memory database.
    """
    engine = create_async_engine(
        test_settings.database_url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """A bare AsyncSession for service-level tests."""
    factory = build_session_factory(db_engine)
    async with factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Application & HTTP Clients
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def app_context(test_settings, db_engine, stub_generator):
    ctx = build_context(test_settings, engine=db_engine, generator=stub_generator)
    yield ctx
    await ctx.aclose()


@pytest.fixture
def app(app_context):
    from personalpage.main import create_app
    return create_app(context=app_context)


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient wired straight into the ASGI app.

    Keeps cookies between requests like a browser, so a register or login
    call logs the client in for the rest of the test.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def other_client(app):
    """A second, independent browser against the same app and database."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
