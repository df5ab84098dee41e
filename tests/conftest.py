"""
Shared pytest configuration.

The environment is set before any app module is imported, so the engine
points at a throwaway SQLite file and neither the rate limiter nor the
background sweeper get in the way.
"""
import asyncio
import os
import tempfile
from pathlib import Path

_db_dir = tempfile.mkdtemp(prefix="offgrid-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_db_dir) / 'test.db'}"
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["SESSION_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _clear_sessions():
    from app.features.auth.sessions import sessions
    sessions.clear()
    yield
    sessions.clear()


async def _reset_database():
    from app.core.database.base import Base
    from app.core.database.engine import engine, init_db

    await init_db()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
def client():
    """TestClient on a freshly emptied database."""
    from fastapi.testclient import TestClient
    from app.main import app

    asyncio.run(_reset_database())
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user():
    """
    Insert a user directly and return its id.

    Usage:
        user_id = make_user("ua@offgrid.org", role_id=31, overrides=[("U", True)])
    """
    from app.core.database.engine import AsyncSessionLocal
    from app.features.auth.passwords import hash_password
    from app.features.users.models import ExtraPermission, User, UserState

    async def create(email, password, role_id, overrides, state):
        async with AsyncSessionLocal() as db:
            user = User(
                username=email.split("@")[0][:16],
                email=email,
                hashed_password=hash_password(password),
                role_id=role_id,
                state=state,
                extra_permissions=[
                    ExtraPermission(permission_code=code, is_shield=is_shield)
                    for code, is_shield in overrides
                ],
            )
            db.add(user)
            await db.commit()
            return user.id

    def factory(email, role_id, overrides=(), password="correct-horse", state=UserState.NORMAL):
        return asyncio.run(create(email, password, role_id, overrides, state))

    return factory


@pytest.fixture
def login(client):
    """Log in through the API and return the bearer token."""
    def do_login(email, password="correct-horse"):
        response = client.post("/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["bearer"]

    return do_login
