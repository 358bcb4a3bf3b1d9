"""
Shared fixtures for integration tests.

HTTP tests use httpx.AsyncClient over ASGITransport. The transport does not
run the lifespan, so sweep loops stay off and each test gets a fresh app with
its own cache, limiter and job processor.
"""

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from anitrack.core.config import settings
from anitrack.main import create_app

API_PREFIX = settings.API_V1_PREFIX


@pytest_asyncio.fixture
async def app():
    return create_app()


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://testserver"
    ) as ac:
        yield ac
