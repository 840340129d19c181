"""
DocShelf Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── db_engine:        in-memory aiosqlite engine with the schema created
    ├── db_session:       AsyncSession bound to db_engine
    ├── file_session_factory: sessions on a SQLite file, one connection each
    ├── mock_db_session:  AsyncMock session (no database at all)
    ├── page_service:     fresh PageService with its own partition locks
    ├── make_pages:       helper creating n pages for an API, positions 0..n-1
    └── test_client:      HTTPX AsyncClient with get_db_session overridden
"""

import os

# Override settings BEFORE any docshelf import reads them
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["REORDER_LOCK_TIMEOUT"] = "2"

from typing import AsyncGenerator, List  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from docshelf.database import Base, get_db_session  # noqa: E402
from docshelf.models.page import Page  # noqa: E402, F401
from docshelf.schemas.page import NewPageRequest, PageResponse  # noqa: E402
from docshelf.services.page_service import PageService  # noqa: E402


@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite engine shared by every session of one test.

    StaticPool keeps the single connection alive, so the schema created
    here is the one the sessions see.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """
    Sessions on a SQLite file, each with its own connection.

    Stands in for two worker processes sharing one database: what one
    session commits, the other only sees by reading it again.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pages.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = page
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def page_service() -> PageService:
    return PageService()


@pytest.fixture
def make_pages(db_session, page_service):
    """
    Returns an async helper: `await make_pages("petstore", 4)` creates pages
    "P0".."P3" at positions 0..3 and returns their PageResponses.
    """

    async def _make(api_id: str, count: int, prefix: str = "P") -> List[PageResponse]:
        created = []
        for i in range(count):
            created.append(
                await page_service.create_page(
                    db_session,
                    api_id,
                    NewPageRequest(name=f"{prefix}{i}", content=f"# {prefix}{i}"),
                )
            )
        return created

    return _make


@pytest_asyncio.fixture
async def test_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTPX AsyncClient routed straight into the FastAPI app.

    get_db_session is overridden to hand out sessions of the in-memory
    test database, with the same commit/rollback behaviour.
    """
    from docshelf.main import app

    async def _test_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _test_session
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
