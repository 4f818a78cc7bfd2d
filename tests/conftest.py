"""Shared test fixtures: file-backed async SQLite DB, storage adapter and test client."""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from meterstore.core.config import Settings
from meterstore.core.database import Database
from meterstore.core.security import hash_api_key
from meterstore.events import AddKey, AddKeyData
from meterstore.main import create_app
from meterstore.services.storage import StorageAdapter

ADMIN_TOKEN = "test-admin-token"
RAW_API_KEY = "msk_test_fixture_key"


@pytest.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    # A file (not :memory:) so concurrent transactions see the same database
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'meterstore.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def storage(database) -> StorageAdapter:
    return StorageAdapter(database)


@pytest.fixture
async def api_key_id(storage) -> str:
    """Id of a provisioned API key, for events that must reference one."""
    result = await storage.add(AddKey(data=AddKeyData(
        name="fixture-key",
        key=hash_api_key(RAW_API_KEY),
        expires_at=datetime(2099, 1, 1, tzinfo=timezone.utc),
    )))
    return result["id"]


@pytest.fixture
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client bound to the per-test database."""
    settings = Settings(admin_token=ADMIN_TOKEN, log_level="WARNING")
    app = create_app(settings=settings, database=database)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def count_rows(database):
    """Return an async callable counting the rows of a table."""

    async def _count(model) -> int:
        async with database.session() as session:
            stmt = select(func.count()).select_from(model)
            return (await session.execute(stmt)).scalar_one()

    return _count
