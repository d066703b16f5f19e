"""Pytest fixtures for the feed backend."""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from datetime import datetime
from pathlib import Path
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pytest_asyncio import is_async_test
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from api.deps import get_db
from app import create_app
from core import create_access_token
from models import Post, PostTag, User
from models.common import utcnow
from services import Budget, RateLimiter, set_rate_limiter


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Run every async test on the session loop shared with the engine fixtures."""
    session_scope_marker = pytest.mark.asyncio(loop_scope="session")
    for item in items:
        if is_async_test(item):
            item.add_marker(session_scope_marker, append=False)


def _run_alembic_migrations(connection: Connection) -> None:
    """Apply Alembic migrations on an already-open connection."""
    backend_dir = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_dir / "alembic"))
    alembic_cfg.attributes["connection"] = connection
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


@pytest.fixture(scope="session")
def test_database_url(tmp_path_factory) -> str:
    """Return a file-backed SQLite URL for the test session."""
    db_dir = tmp_path_factory.mktemp("sqlite")
    db_path = db_dir / "backend-test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def test_engine(test_database_url: str) -> AsyncIterator:
    """Create an async engine and migrate the test database to head."""
    engine = create_async_engine(
        test_database_url,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as connection:
        await connection.run_sync(_run_alembic_migrations)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="session")
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the test engine."""
    return async_sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture(scope="session")
def app(session_maker) -> Iterator[FastAPI]:
    """Create the FastAPI app with a test database dependency override."""
    application = create_app()

    async def override_get_db() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    yield application


@pytest_asyncio.fixture(loop_scope="session")
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture(autouse=True, loop_scope="session")
async def clean_database(session_maker) -> AsyncIterator[None]:
    """Clear tables before each test to guarantee isolation."""
    async with session_maker() as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            await session.execute(table.delete())
        await session.commit()
    yield


@pytest_asyncio.fixture(loop_scope="session")
async def db_session(session_maker) -> AsyncIterator[AsyncSession]:
    """Provide a raw database session to tests."""
    async with session_maker() as session:
        yield session


class _InMemoryRedis:
    def __init__(self) -> None:
        self.data: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        value = self.data.get(key, 0) + 1
        self.data[key] = value
        return value

    async def expire(self, key: str, ttl: int) -> None:  # pragma: no cover - noop
        return None


@pytest.fixture(autouse=True)
def _rate_limiter_stub() -> Iterator[None]:
    generous = Budget(limit=1_000, window_seconds=60)
    limiter = RateLimiter(
        _InMemoryRedis(),
        {"general": generous, "feed_query": generous, "social_write": generous},
    )
    set_rate_limiter(limiter)
    yield
    set_rate_limiter(None)


@pytest.fixture()
def auth_headers() -> Callable[[User], dict[str, str]]:
    """Build bearer headers for a user; token issuance is external in production."""

    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers


MakeUser = Callable[..., Awaitable[User]]
MakePost = Callable[..., Awaitable[Post]]


@pytest.fixture()
def make_user(session_maker) -> MakeUser:
    """Insert a user row directly; accounts are provisioned outside this service."""

    async def _make_user(prefix: str = "user", *, user_id: str | None = None) -> User:
        suffix = uuid4().hex[:6]
        user = User(
            id=user_id or str(uuid4()),
            username=f"{prefix}_{suffix}",
            name=prefix.capitalize(),
        )
        async with session_maker() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_post(session_maker) -> MakePost:
    """Insert a post with an explicit timestamp so ordering is deterministic."""

    async def _make_post(
        author: User,
        *,
        visibility: str = "public",
        post_type: str = "text",
        content: str | None = "hello",
        tags: tuple[str, ...] = (),
        created_at: datetime | None = None,
        media_keys: list[str] | None = None,
        deleted_at: datetime | None = None,
    ) -> Post:
        timestamp = created_at or utcnow()
        post = Post(
            author_id=author.id,
            post_type=post_type,
            content=content,
            media_keys=media_keys if media_keys is not None else [],
            visibility=visibility,
            created_at=timestamp,
            updated_at=timestamp,
            deleted_at=deleted_at,
        )
        async with session_maker() as session:
            session.add(post)
            await session.flush()
            for tag in tags:
                session.add(PostTag(post_id=post.id, tag=tag))
            await session.commit()
            await session.refresh(post)
        return post

    return _make_post
