"""
Test infrastructure for the notes & posts API.

Strategy
--------
- SQLite in-memory via aiosqlite replaces Postgres.  StaticPool makes every
  session share the single in-memory connection, otherwise each new
  connection would see an empty database.
- ``get_db`` is overridden so requests use the test session factory.
- Tables are created before and dropped after every test.
- Redis is replaced by ``FakeRedis``, a dict-backed stand-in exposing the
  handful of commands ``CacheManager`` uses, so cache hits, misses and
  invalidations are exercised for real.
- The lifespan does not run under ASGITransport, so the fixtures attach the
  collaborators (cache, user directory, media storage) to ``app.state``.
"""
import fnmatch
import io

import pytest
import pytest_asyncio
import redis.asyncio as redis
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import blog_api.models  # noqa: F401
from blog_api.cache import CacheManager
from blog_api.database import Base, get_db
from blog_api.main import app
from blog_api.middleware import install_query_counter
from blog_api.security import create_access_token, hash_password
from blog_api.services.auth_service import User, UserDirectory
from blog_api.services.media import ImageStorage
from blog_api.services.note_service import NotesService
from blog_api.services.post_service import PostsService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_LOGIN = "admin"
ADMIN_PASSWORD = "correct horse battery staple"
ADMIN_PASSWORD_HASH = hash_password(ADMIN_PASSWORD)


def make_image(width: int = 1600, height: int = 900, fmt: str = "PNG") -> bytes:
    """Encode a solid-colour picture for upload tests."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (30, 120, 200)).save(buffer, format=fmt)
    return buffer.getvalue()


engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Redis stand-in
# ---------------------------------------------------------------------------

class FakeRedis:
    """Dict-backed async Redis double covering GET/SET/DEL/SCAN."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int | None] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.fail_deletes = False

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise redis.ConnectionError("read failed")
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        if self.fail_writes:
            raise redis.ConnectionError("write failed")
        self.store[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        if self.fail_deletes:
            raise redis.ConnectionError("delete failed")
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                self.ttls.pop(key, None)
                removed += 1
        return removed

    async def scan_iter(self, match: str | None = None, count: int | None = None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis: FakeRedis) -> CacheManager:
    return CacheManager("redis://test", client=fake_redis)


@pytest.fixture
def media(tmp_path) -> ImageStorage:
    return ImageStorage(tmp_path / "uploads")


@pytest.fixture
def users() -> UserDirectory:
    return UserDirectory(
        [User(id=1, login=ADMIN_LOGIN, password_hash=ADMIN_PASSWORD_HASH, role="admin")]
    )


@pytest.fixture
def notes_service(db_session: AsyncSession, cache: CacheManager) -> NotesService:
    return NotesService(db_session, cache)


@pytest.fixture
def posts_service(db_session: AsyncSession, cache: CacheManager, media: ImageStorage) -> PostsService:
    return PostsService(db_session, cache, media)


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject='1', role='admin')}"}


@pytest_asyncio.fixture
async def async_client(cache: CacheManager, users: UserDirectory, media: ImageStorage) -> AsyncClient:
    """httpx.AsyncClient wired to the FastAPI app via ASGITransport."""
    app.state.cache = cache
    app.state.users = users
    app.state.media = media
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
