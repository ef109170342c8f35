"""
Pytest configuration and shared fixtures.

This module provides common fixtures for testing:
- A controllable clock
- Storage backends (in-memory and SQLite)
- The authentication core components and a full service context
- API and MCP clients bound to that context
"""

import os
import sys
from pathlib import Path
from typing import Generator, List

import pytest
from fastapi.testclient import TestClient

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before imports
os.environ["JWT_SECRET_KEY"] = "test_jwt_secret_key_for_testing_only_32bytes!"
os.environ["MCP_API_KEY"] = "test_mcp_api_key_for_testing_only"
os.environ["STORAGE_BACKEND"] = "memory"

from identity.auth import JWTHandler, PasswordHandler, SecretDigester
from identity.config import AuthPolicy, Config, StorageConfig, ServerConfig
from identity.models import CodeHandle
from identity.services import (
    ServiceContext,
    CredentialStore,
    VerificationCodeManager,
    TokenService,
    AuthGateway,
    DeliveryService,
    set_context,
)
from identity.storage import InMemoryStorage, SQLiteStorage

TEST_SECRET = "test_jwt_secret_key_for_testing_only_32bytes!"
TEST_API_KEY = "test_mcp_api_key_for_testing_only"
START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingDelivery(DeliveryService):
    """Delivery service that keeps handles instead of sending them."""

    def __init__(self):
        super().__init__()
        self.sent: List[CodeHandle] = []

    def deliver(self, handle: CodeHandle) -> dict:
        self.sent.append(handle)
        return {"delivered": True, "channel": handle.channel, "destination": "masked"}

    @property
    def last_code(self) -> str:
        return self.sent[-1].code


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture(scope="session")
def test_config():
    """Test configuration values."""
    return {
        "jwt_secret": TEST_SECRET,
        "mcp_api_key": TEST_API_KEY,
        "test_email": "test.user@example.com",
        "test_phone": "+5511999999999",
        "test_password": "TestPassword123",
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> AuthPolicy:
    """Fast bcrypt, default TTLs, verification off."""
    return AuthPolicy(secret_key=TEST_SECRET, bcrypt_rounds=4)


# =============================================================================
# Storage Fixtures
# =============================================================================

@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def sqlite_storage(tmp_path) -> Generator[SQLiteStorage, None, None]:
    store = SQLiteStorage(str(tmp_path / "identity.db"))
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_storage(request, tmp_path):
    """Each storage backend in turn."""
    if request.param == "memory":
        yield InMemoryStorage()
    else:
        store = SQLiteStorage(str(tmp_path / "identity.db"))
        yield store
        store.close()


# =============================================================================
# Core Component Fixtures
# =============================================================================

@pytest.fixture
def password_handler() -> PasswordHandler:
    """Create a PasswordHandler with a low work factor."""
    return PasswordHandler(rounds=4)


@pytest.fixture
def digester() -> SecretDigester:
    return SecretDigester(TEST_SECRET)


@pytest.fixture
def jwt_handler(clock) -> JWTHandler:
    """Create a JWTHandler with test secret and clock."""
    return JWTHandler(secret_key=TEST_SECRET, clock=clock)


@pytest.fixture
def credentials(storage, password_handler) -> CredentialStore:
    return CredentialStore(storage, password_handler)


@pytest.fixture
def codes(storage, digester, policy, clock) -> VerificationCodeManager:
    return VerificationCodeManager(storage, digester, policy, clock=clock)


@pytest.fixture
def token_service(storage, jwt_handler, digester, policy, clock) -> TokenService:
    return TokenService(
        storage,
        jwt_handler,
        digester,
        policy,
        user_loader=storage.get_user_by_id,
        clock=clock
    )


@pytest.fixture
def gateway(credentials, codes, token_service, policy) -> AuthGateway:
    return AuthGateway(credentials, codes, token_service, policy)


@pytest.fixture
def sample_user(credentials, test_config):
    """Create a sample user with email and phone."""
    return credentials.create(
        email=test_config["test_email"],
        password=test_config["test_password"],
        phone=test_config["test_phone"],
        first_name="Test",
        last_name="User"
    )


# =============================================================================
# Service Context Fixtures
# =============================================================================

def build_context(clock: FakeClock, **policy_overrides) -> ServiceContext:
    """Service context on in-memory storage with a recording delivery."""
    settings = {"secret_key": TEST_SECRET, "bcrypt_rounds": 4}
    settings.update(policy_overrides)
    config = Config(
        auth=AuthPolicy(**settings),
        storage=StorageConfig(backend="memory"),
        server=ServerConfig(mcp_api_key=TEST_API_KEY),
    )
    context = ServiceContext.create(config=config, clock=clock)
    context._delivery = RecordingDelivery()
    return context


@pytest.fixture
def context(clock) -> Generator[ServiceContext, None, None]:
    """Shared context installed for both front ends (verification off)."""
    ctx = build_context(clock)
    set_context(ctx)
    yield ctx
    set_context(None)


@pytest.fixture
def verifying_context(clock) -> Generator[ServiceContext, None, None]:
    """Shared context that requires email verification before tokens."""
    ctx = build_context(clock, require_verification=True)
    set_context(ctx)
    yield ctx
    set_context(None)


# =============================================================================
# API / MCP Client Fixtures
# =============================================================================

@pytest.fixture
def api_app():
    """Create FastAPI app for testing."""
    from api.main import app
    return app


@pytest.fixture
def api_client(api_app) -> TestClient:
    """Create synchronous test client for API (lifespan not started)."""
    return TestClient(api_app)


@pytest.fixture
def mcp_app():
    """Create MCP Starlette app for testing."""
    from mcp_gateway.sse_server import app
    return app


@pytest.fixture
def mcp_client(mcp_app) -> TestClient:
    """Create synchronous test client for MCP."""
    return TestClient(mcp_app)
