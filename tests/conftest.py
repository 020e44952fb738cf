"""Shared test fixtures."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from changegate.db.base import Base
from changegate.db.engine import create_tables
# Import all models to register with Base.metadata
import changegate.db.models  # noqa: F401
from changegate.services.interception import uninstall
from changegate.services.policy import clear_registry, register_approval

from approval_models import Post


@pytest.fixture(autouse=True)
def post_policy():
    """Posts need approval while approved; updated_at is always allowed through."""
    policy = register_approval(Post, when="is_approved", skip_attributes=("updated_at",))
    yield policy
    clear_registry()
    uninstall()


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///", echo=False)
    await create_tables(engine, Base.metadata)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Create a test database session."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def post(db_session):
    """An approved post, already persisted."""
    row = Post(title="metaware", body="first draft", state="approved")
    db_session.add(row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.fixture
async def expiring_session(db_engine):
    """A session left at the default expire_on_commit=True."""
    session_factory = async_sessionmaker(db_engine, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest.fixture
async def expired_post(expiring_session):
    """An approved post whose columns are all expired."""
    row = Post(title="metaware", body="first draft", state="approved")
    expiring_session.add(row)
    await expiring_session.commit()
    return row
