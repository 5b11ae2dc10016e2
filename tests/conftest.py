import os
import uuid
from contextlib import contextmanager
from typing import AsyncGenerator, Optional

# Settings are cached on first import; point them at SQLite before that.
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.base import Base
from libs.db.config import enable_sqlite_foreign_keys
from libs.db.session import get_async_db
from services.clubs_service import models as _club_models  # noqa: F401
from services.clubs_service.app.main import app


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory database per test.

    StaticPool keeps the single connection alive so every session sees the
    same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine.sync_engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient bound to the app, sharing ``db_session``.

    Requests run as whoever ``override_auth`` installs; without it they fail
    authentication.
    """
    app.dependency_overrides[get_async_db] = lambda: db_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def make_member_user(
    user_id: Optional[str] = None,
    email: Optional[str] = None,
    role: str = "authenticated",
) -> AuthUser:
    """Build the authenticated principal a bearer token would decode to."""
    user_id = user_id or f"user-{uuid.uuid4().hex[:8]}"
    return AuthUser(
        user_id=user_id,
        email=email or f"{user_id}@test.com",
        name=f"Test {user_id}",
        role=role,
    )


@contextmanager
def override_auth(target_app, user: AuthUser):
    """Run requests inside the block as ``user``."""
    previous = target_app.dependency_overrides.get(get_current_user)
    target_app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield user
    finally:
        if previous is None:
            target_app.dependency_overrides.pop(get_current_user, None)
        else:
            target_app.dependency_overrides[get_current_user] = previous
