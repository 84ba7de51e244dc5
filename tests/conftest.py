"""
Shared test fixtures.

Environment is overridden BEFORE application modules are imported:
mock identity provider, no simulated latency, in-memory record stores.
"""

import os
from typing import AsyncGenerator

import pytest

os.environ["ENV_MODE"] = "development"
os.environ["STORE_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MOCK_FAILURE_RATE"] = "0"
os.environ["MOCK_MIN_LATENCY"] = "0"
os.environ["MOCK_MAX_LATENCY"] = "0"
os.environ["AUTH_TIMEOUT_SECONDS"] = "2"

from app.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.services.identity import MockIdentityProvider, MockUserDirectory  # noqa: E402
from app.services.session import SessionAuthority  # noqa: E402
from app.services.stores import InMemoryRoleStore, InMemoryTenantStore, reset_stores  # noqa: E402


@pytest.fixture
def directory() -> MockUserDirectory:
    return MockUserDirectory()


@pytest.fixture
def provider(directory: MockUserDirectory) -> MockIdentityProvider:
    return MockIdentityProvider(directory)


@pytest.fixture
def role_store() -> InMemoryRoleStore:
    return InMemoryRoleStore()


@pytest.fixture
def tenant_store() -> InMemoryTenantStore:
    return InMemoryTenantStore()


@pytest.fixture
def authority(provider: MockIdentityProvider, role_store: InMemoryRoleStore) -> SessionAuthority:
    return SessionAuthority(provider, role_store, timeout=1.0)


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient wired to the app, with fresh stores and accounts."""
    from app.main import app, user_directory

    reset_stores()
    user_directory.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    reset_stores()
