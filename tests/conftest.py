"""
tests/conftest.py
Shared fixtures: per-test SQLite database, frozen clock, fake Redis,
fake email sender, seeded courts/slots/users, and an HTTP client bound
to the app with all of those injected.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("APP_ENV", "test")
os.environ["RESEND_API_KEY"] = ""
os.environ["CRON_SECRET"] = "test-cron-secret"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.database import Base, get_db
from config.redis_client import get_redis
from main import app
from services.admin.router import get_job_code_generator
from services.job_code.generator import JobCodeGenerator, sql_counter_increment
from services.notification.email import get_email_sender
from services.slots.catalog import seed_reference_data
from shared.models import models  # noqa: F401  (registers tables)
from shared.models.models import User, UserRole
from shared.utils.time_utils import get_clock
from tests.helpers import NOW, FakeEmailSender, FakeRedis, FrozenClock


# ── Database ───────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(
        bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        await seed_reference_data(session)
        await session.commit()
        yield session


# ── Collaborators ──────────────────────────────────────────────────────────────

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_email() -> FakeEmailSender:
    return FakeEmailSender()


# ── Users ──────────────────────────────────────────────────────────────────────

async def _make_user(db: AsyncSession, email: str, name: str, role: UserRole) -> User:
    user = User(email=email, name=name, phone="+60123456789", role=role, is_active=True)
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    return await _make_user(db, "player@example.com", "Test Player", UserRole.USER)


@pytest_asyncio.fixture
async def other_user(db: AsyncSession) -> User:
    return await _make_user(db, "other@example.com", "Other Player", UserRole.USER)


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    return await _make_user(db, "admin@example.com", "Front Desk", UserRole.ADMIN)


# ── HTTP client ────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(db, session_factory, clock, fake_redis, fake_email):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_email_sender] = lambda: fake_email
    app.dependency_overrides[get_job_code_generator] = lambda: JobCodeGenerator(
        sql_counter_increment(session_factory), clock=clock, retry_delay=0
    )

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
