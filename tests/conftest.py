"""
PayFlow - Shared test fixtures.

Each test gets a fresh app with in-memory storage, so limiter state and data
never leak between tests. ASGITransport does not run the lifespan; memory
storage needs no initialization.
"""

from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from payflow.core.config import Settings
from payflow.main import create_app
from payflow.services.storage.memory import MemoryStorage

PASSWORD = "Aa1!aaaa"
API_KEY = "test-internal-api-key"
ADMIN_EMAIL = "admin@payflow.test"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="test",
        storage_backend="memory",
        auth_mode="local",
        jwt_secret="test-secret-that-is-long-enough-for-hs256-signing",
        bcrypt_rounds=4,
        internal_api_key=API_KEY,
        admin_emails=[ADMIN_EMAIL],
        log_level="WARNING",
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage=storage)


@pytest.fixture
async def client(app):
    """Create test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def register(client):
    """
    Register a local user and return (token, user, headers).

    Usage:
        ana = await register("Ana", "ana@x.com")
        await client.get("/api/bills", headers=ana.headers)
    """
    async def _register(name: str = "Ana", email: str = "ana@x.com", password: str = PASSWORD):
        response = await client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201, response.text
        data = response.json()
        return SimpleNamespace(
            token=data["token"],
            user=data["user"],
            headers={"Authorization": f"Bearer {data['token']}"},
        )

    return _register
