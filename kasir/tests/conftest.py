"""Shared fixtures: in-memory database, seeded menu and an ASGI client."""

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient

from kasir.app.db import create_test_session, get_session
from kasir.app.main import app
from kasir.app.services.payment_gateway import get_gateway
from kasir.tests._seed import seed_menu


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def sessions(anyio_backend):
    factory, engine = await create_test_session()
    async with factory() as session:
        await seed_menu(session)
    yield factory
    await engine.dispose()


@pytest.fixture
async def client(sessions):
    async def _session():
        async with sessions() as session:
            yield session

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_gateway] = lambda: None
    app.state.redis = fakeredis.aioredis.FakeRedis()

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
