import sys
import os
import pathlib
import uuid
import warnings
import logging as _logging

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# The engine is built from DATABASE_URL at import time, so point it at a
# throwaway database before anything from tagtodo is imported.
ROOT = pathlib.Path(__file__).resolve().parents[1]
TEST_DB = ROOT / 'test_tagtodo.db'
os.environ['DATABASE_URL'] = f"sqlite+aiosqlite:///{TEST_DB}"
# A non-fallback SECRET_KEY so the app lifespan check passes.
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-unit-tests')
os.environ.setdefault('TIMING_LOG', '0')
if TEST_DB.exists():
    TEST_DB.unlink()

sys.path.insert(0, str(ROOT))

try:
    from sqlalchemy.exc import SAWarning
    warnings.filterwarnings('ignore', category=SAWarning)
except ImportError:
    pass

# Reduce SQLAlchemy logger verbosity during tests
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool', 'sqlmodel'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

from tagtodo.main import app
from tagtodo.db import init_db
from tagtodo.auth import create_user

TEST_PASSWORD = 'testpass'


def unique_username(prefix: str = 'user') -> str:
    return f"{prefix}_{uuid.uuid4().hex[:10]}"


async def _login(ac, prefix: str):
    """Create a fresh user and put their bearer token on the open client."""
    username = unique_username(prefix)
    user = await create_user(username, TEST_PASSWORD)
    assert user is not None
    resp = await ac.post("/auth/token", json={"username": username, "password": TEST_PASSWORD})
    assert resp.status_code == 200, resp.text
    ac.headers.update({"Authorization": f"Bearer {resp.json()['access_token']}"})
    ac.user = user
    return ac


@pytest_asyncio.fixture
async def ensure_db():
    await init_db()
    yield


@pytest_asyncio.fixture
async def client(ensure_db):
    """Authenticated client for a user created just for this test."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield await _login(ac, 'user')


@pytest_asyncio.fixture
async def other_client(ensure_db):
    """A second, unrelated user; used to check cross-user isolation."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield await _login(ac, 'other')


@pytest_asyncio.fixture
async def anon_client(ensure_db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def api_session():
    """Synchronous Starlette TestClient plus a fresh user's credentials.

    Used as the transport for the requests-style ``TodoClient``.
    """
    import asyncio
    from starlette.testclient import TestClient

    asyncio.run(init_db())
    username = unique_username('sync')
    user = asyncio.run(create_user(username, TEST_PASSWORD))
    assert user is not None
    with TestClient(app) as tc:
        yield tc, username, TEST_PASSWORD


def pytest_sessionfinish(session, exitstatus):
    """Dispose the async engine and remove the throwaway database."""
    import asyncio
    from tagtodo import db as tagtodo_db

    try:
        asyncio.run(tagtodo_db.engine.dispose())
    except RuntimeError:
        # an event loop is still running; the atexit hook disposes instead
        pass
    if TEST_DB.exists():
        TEST_DB.unlink()
