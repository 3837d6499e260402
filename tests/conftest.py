import os
from collections.abc import AsyncGenerator
from datetime import timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file, then fill what tests need
load_dotenv()
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./cabinet_test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("REDIS_HOST", "localhost")
os.environ.setdefault("LOG_FORMAT", "console")

from cabinet.core.security import create_access_token  # noqa: E402
from cabinet.database import get_db  # noqa: E402
from cabinet.dependencies import get_cache_manager  # noqa: E402
from cabinet.main import app  # noqa: E402
from cabinet.models import metadata, patients, therapists  # noqa: E402
from cabinet.services.user_service import UserService  # noqa: E402


@pytest_asyncio.fixture
async def test_engine(tmp_path: Path):
    """A fresh SQLite file database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cabinet.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client with the availability cache disabled."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_manager] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def clinic(db_session: AsyncSession) -> dict:
    """Three therapists and two patients."""
    therapist_ids = []
    for name in ("Claire Martin", "Julien Bernard", "Sophie Laurent"):
        result = await db_session.execute(
            insert(therapists).values(name=name, specialty="Orthophonie").returning(therapists.c.id)
        )
        therapist_ids.append(result.scalar_one())

    patient_ids = []
    for first_name, last_name in (("Lucas", "Petit"), ("Emma", "Durand")):
        result = await db_session.execute(
            insert(patients)
            .values(first_name=first_name, last_name=last_name)
            .returning(patients.c.id)
        )
        patient_ids.append(result.scalar_one())

    await db_session.commit()
    return {"therapists": therapist_ids, "patients": patient_ids}


async def _create_user(
    db_session: AsyncSession,
    username: str,
    role: str,
    therapist_id: int | None = None,
) -> dict:
    return await UserService.create_user(
        db_session,
        username=username,
        email=f"{username}@cabinet.test",
        password="secret-password",
        role=role,
        therapist_id=therapist_id,
    )


def _headers(user: dict) -> dict:
    token = create_access_token(
        data={"sub": str(user["id"]), "role": user["role"]},
        expires_delta=timedelta(minutes=30),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession, clinic: dict) -> dict:
    return await _create_user(db_session, "admin", "admin")


@pytest_asyncio.fixture
async def therapist_user(db_session: AsyncSession, clinic: dict) -> dict:
    """Account tied to the first therapist."""
    return await _create_user(db_session, "claire", "therapist", clinic["therapists"][0])


@pytest.fixture
def auth_headers(admin_user: dict) -> dict:
    """Create authentication headers for clinic staff."""
    return _headers(admin_user)


@pytest.fixture
def therapist_headers(therapist_user: dict) -> dict:
    return _headers(therapist_user)
