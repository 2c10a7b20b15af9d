from __future__ import annotations
import os
import tempfile

# must run before anything imports stac.config
_DB_DIR = tempfile.mkdtemp(prefix="stac-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'stac-test.db')}"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import httpx
import pytest_asyncio
from httpx import AsyncClient

import stac.models.user  # noqa: F401
import stac.models.room  # noqa: F401
from stac.db import create_all, drop_all
from stac.main import app


@pytest_asyncio.fixture
async def db():
    """Fresh schema per test."""
    await drop_all()
    await create_all()
    yield


@pytest_asyncio.fixture
async def ac(db):
    async with AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
