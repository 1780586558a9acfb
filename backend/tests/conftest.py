"""
Natours Backend: Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before anything from `natours` is
       imported, so the settings singleton, the engine and the image
       service all pick up the test configuration.

Fixture overview:
    mock_db_session   AsyncMock session for service unit tests
    temp_storage      per-test directory for image writes
    sample_jpeg       a small real JPEG made with Pillow
    database          fresh in-memory SQLite schema per test
    db_session        a session on that database, for seeding
    test_client       httpx AsyncClient wired to the app over ASGI
    make_user / make_tour / auth_headers
                      helpers for API tests
"""

import io
import os
import tempfile
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

# ── Environment (before any natours import) ──────────────────────────────
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="natours_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SMTP_HOST"] = ""
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from PIL import Image  # noqa: E402

from natours import models  # noqa: E402,F401
from natours.database import Base, async_session_factory, engine  # noqa: E402
from natours.models.tour import Tour  # noqa: E402
from natours.models.user import User  # noqa: E402
from natours.security import sign_token  # noqa: E402

DEFAULT_PASSWORD = "pass1234"


# ══════════════════════════════════════════════════════════════════════════
# Unit-test fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock AsyncSession.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = user
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.delete = AsyncMock()
    session.get = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


def jpeg_bytes(size=(64, 48), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def sample_jpeg():
    return jpeg_bytes()


# ══════════════════════════════════════════════════════════════════════════
# Database-backed fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """
    Create the schema on a fresh in-memory database.

    The engine uses a StaticPool, so disposing it at teardown drops the one
    connection and with it the whole database.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(database):
    async with async_session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_client(database):
    from natours.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_user(db_session):
    """Factory: `await make_user(role="admin")` → a committed User."""
    counter = {"n": 0}

    async def _make_user(role="user", name=None, email=None, password=DEFAULT_PASSWORD, **extra):
        counter["n"] += 1
        user = User(
            name=name or f"Test {role.title()} {counter['n']}",
            email=email or f"{role}{counter['n']}@example.com",
            role=role,
            **extra,
        )
        user.set_password(password)
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_tour(db_session):
    """Factory: `await make_tour(name="The Forest Hiker", price=397)` → a committed Tour."""
    counter = {"n": 0}

    async def _make_tour(**overrides):
        counter["n"] += 1
        data = {
            "name": f"Sample Tour Number {counter['n']}",
            "duration": 5,
            "max_group_size": 10,
            "difficulty": "easy",
            "price": 500.0,
            "summary": "A sample tour",
            "image_cover": "tour-cover.jpg",
            "start_dates": [datetime(2021, 6, 19, 9, tzinfo=timezone.utc)],
        }
        guides = overrides.pop("guides", [])
        data.update(overrides)
        tour = Tour(**data)
        tour.guides = guides
        db_session.add(tour)
        await db_session.commit()
        return tour

    return _make_tour


@pytest.fixture
def auth_headers():
    """`auth_headers(user)` → an Authorization header carrying a fresh token."""

    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {sign_token(user.id)}"}

    return _auth_headers
