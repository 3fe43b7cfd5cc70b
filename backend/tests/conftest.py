"""Pytest fixtures for buyersync backend tests."""

import asyncio
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import buyersync.models  # noqa: F401  (registers tables on Base.metadata)
from buyersync.database import Base, get_db
from buyersync.main import app
from buyersync.rate_limit import limiter
from buyersync.schemas.buyer import BuyersApiSettings
from buyersync.schemas.sync import PageResponse
from buyersync.services.buyers_data import BuyersDataService, get_buyers_data_service
from buyersync.services.proxy_client import ProxyClient
from buyersync.websocket.manager import ConnectionManager

# Test database URL - in-memory SQLite shared through a static pool
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_buyers(start: int, count: int) -> list[dict[str, Any]]:
    """Buyer records shaped like the finance API's."""
    return [
        {
            "id": i,
            "name": f"Buyer {i}",
            "phone": f"07700{i:06d}",
            "balance": i * 10,
            "currency": "IQD" if i % 2 else "USD",
        }
        for i in range(start, start + count)
    ]


def make_page(records: list[dict[str, Any]], total: int | None = None) -> PageResponse:
    """Successful proxy reply carrying one page."""
    data: dict[str, Any] = {"data": records}
    if total is not None:
        data["total"] = total
    return PageResponse(ok=True, data=data)


class FakeProxyClient(ProxyClient):
    """
    Proxy client serving scripted outcomes per page.

    ``plan`` maps a page number to a list of outcomes (PageResponse or
    Exception) consumed in order; the last one repeats. Unknown pages are
    empty. Set ``gate`` to an asyncio.Event to hold every fetch until set.
    """

    def __init__(self, plan: dict[int, list[Any]], **kwargs):
        super().__init__(**kwargs)
        self.plan = plan
        self.calls: list[int] = []
        self.gate: asyncio.Event | None = None

    async def fetch_page(self, page: int, page_size: int) -> PageResponse:
        self.calls.append(page)
        if self.gate is not None:
            await self.gate.wait()

        outcomes = self.plan.get(page)
        if not outcomes:
            return make_page([], total=0)
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_sleep() -> Callable[[float], Any]:
    """Simulated clock: records backoff delays and returns immediately."""
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    sleep.delays = delays
    return sleep


@pytest.fixture
def page_plan() -> dict[int, list[Any]]:
    """Per-page outcomes served by the fake proxy client."""
    return {}


@pytest.fixture
def fake_client_factory(page_plan):
    """Client factory building FakeProxyClient instances over ``page_plan``."""
    clients: list[FakeProxyClient] = []

    def factory(api_settings: BuyersApiSettings) -> FakeProxyClient:
        client = FakeProxyClient(
            page_plan,
            proxy_url="https://proxy.test/usersProxy",
            endpoint=api_settings.endpoint,
            token=api_settings.token,
        )
        clients.append(client)
        return client

    factory.clients = clients
    return factory


@pytest.fixture
def api_settings() -> BuyersApiSettings:
    return BuyersApiSettings(
        endpoint="https://finance.test/api/finance/buyers",
        token="test_token_1234567890",
    )


@pytest_asyncio.fixture
async def async_engine():
    """Create async engine for testing."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def connections() -> ConnectionManager:
    return ConnectionManager()


@pytest_asyncio.fixture
async def service(
    api_settings, fake_client_factory, session_factory, connections, fake_sleep
) -> AsyncGenerator[BuyersDataService, None]:
    """Buyers data service wired to the fake proxy and the test database."""
    service = BuyersDataService(
        api_settings=api_settings,
        client_factory=fake_client_factory,
        session_factory=session_factory,
        connections=connections,
        sleep=fake_sleep,
    )
    yield service

    # Don't leave background runs behind
    service.cancel()
    if service.client.gate is not None:
        service.client.gate.set()
    await service.wait()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, service) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database and service overrides."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_buyers_data_service] = lambda: service
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()
