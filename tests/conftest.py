# tests/conftest.py
import os

# Header credentials instead of bearer tokens; must be set before the app settings load
os.environ["ENVIRONMENT"] = "Testing"
os.environ["KUDOS_DRY_RUN"] = "false"

import logging
from typing import AsyncGenerator, Dict, Optional

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from pytest_mock import MockerFixture

from app.core.identity import Identity
from app.models.user import User

logger = logging.getLogger(__name__)

RECIPIENT_ID = "65f1a2b3c4d5e6f708192a3b"
KUDOS_ID = "65f1a2b3c4d5e6f708192a3c"


def auth_headers(
    user_id: Optional[str] = "u1",
    name: str = "Test User",
    email: str = "test.user@contoso.com",
    roles: Optional[str] = None,
) -> Dict[str, str]:
    """X-Test-User-* headers understood by the Testing authentication mode."""
    headers = {"X-Test-User-Name": name, "X-Test-User-Email": email}
    if user_id is not None:
        headers["X-Test-User-Id"] = user_id
    if roles:
        headers["X-Test-User-Roles"] = roles
    return headers


@pytest.fixture
def member() -> Identity:
    return Identity(external_id="u1", display_name="New Person", email="new.person@contoso.com", is_admin=False)


@pytest.fixture
def admin() -> Identity:
    return Identity(external_id="admin-1", display_name="Admin Person", email="admin@contoso.com", is_admin=True)


@pytest.fixture
def recipient() -> User:
    return User(id=RECIPIENT_ID, name="Avery Johnson", team="Engineering", external_id="")


@pytest_asyncio.fixture(scope="function")
async def app(mocker: MockerFixture) -> AsyncGenerator[FastAPI, None]:
    """The FastAPI app with database connection and seeding mocked out of startup/shutdown."""
    mocker.patch("app.main.connect_to_mongo", return_value=True)
    mocker.patch("app.main.close_mongo_connection", return_value=None)
    # No database instance: startup skips indexes and seeding
    mocker.patch("app.main.get_database", return_value=None)

    from app.main import app as fastapi_app

    async with LifespanManager(fastapi_app, startup_timeout=15, shutdown_timeout=15):
        yield fastapi_app

    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as async_client:
        yield async_client
