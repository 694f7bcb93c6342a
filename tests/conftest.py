"""Pytest configuration and shared fixtures."""
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from dealcore.common.config import MatchThresholds, Settings
from dealcore.common.tables import metadata
from dealcore.integrations.cms.client import RegistryUnavailableError


VALLEY_GRANDE_ROW = {
    "federal_provider_number": "455678",
    "provider_name": "VALLEY GRANDE MANOR",
    "provider_address": "901 S SUGAR CANE DR",
    "provider_city": "WESLACO",
    "provider_state": "TX",
    "provider_zip_code": "78596",
    "number_of_certified_beds": "147",
    "overall_rating": "4",
    "total_amount_of_fines_in_dollars": "N/A",
    "special_focus_status": "",
}

GRANDE_VISTA_ROW = {
    "federal_provider_number": "455999",
    "provider_name": "GRANDE VISTA NURSING AND REHABILITATION",
    "provider_city": "HOUSTON",
    "provider_state": "TX",
    "number_of_certified_beds": "120",
}


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, ENVIRONMENT="test")


@pytest.fixture
def thresholds() -> MatchThresholds:
    return MatchThresholds()


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite database with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, start: datetime = datetime(2026, 1, 5, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeRegistryClient:
    """In-memory stand-in for CMSRegistryClient that counts upstream calls."""

    def __init__(self, rows=None, penalties=None, deficiencies=None):
        self.rows = list(rows or [])
        self.penalties = penalties or {}
        self.deficiencies = deficiencies or {}
        self.calls = []
        self.fail = False

    async def _call(self, operation, *args):
        self.calls.append((operation, *args))
        if self.fail:
            raise RegistryUnavailableError("registry down")

    async def search_providers(self, name, state=None, limit=20):
        await self._call("search", name, state, limit)
        words = name.lower().split()
        matches = [
            row for row in self.rows
            if all(w in row["provider_name"].lower() for w in words)
            and (not state or row.get("provider_state") == state)
        ]
        return matches[:limit]

    async def get_provider(self, ccn):
        await self._call("provider", ccn)
        for row in self.rows:
            if row["federal_provider_number"] == ccn:
                return row
        return None

    async def get_penalties(self, ccn):
        await self._call("penalties", ccn)
        return self.penalties.get(ccn, [])

    async def get_deficiencies(self, ccn):
        await self._call("deficiencies", ccn)
        return self.deficiencies.get(ccn, [])

    async def close(self):
        pass

    def count(self, operation):
        return sum(1 for call in self.calls if call[0] == operation)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry_client() -> FakeRegistryClient:
    return FakeRegistryClient(rows=[VALLEY_GRANDE_ROW, GRANDE_VISTA_ROW])


@pytest.fixture
def make_registry_client():
    """Factory for fresh fake clients (e.g. one per cache instance)."""
    def factory(rows=None, **kwargs):
        return FakeRegistryClient(rows=[VALLEY_GRANDE_ROW, GRANDE_VISTA_ROW] if rows is None else rows, **kwargs)
    return factory


@pytest.fixture
def valley_grande_row() -> dict:
    return dict(VALLEY_GRANDE_ROW)
