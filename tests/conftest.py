"""Pytest configuration and fixtures."""

import os
import time
from contextlib import ExitStack
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import UUID

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from jwt.algorithms import ECAlgorithm

# Signing key generated per test run; the public half is what the app verifies against
TEST_SIGNING_KEY = ec.generate_private_key(ec.SECP256R1())
TEST_SIGNING_KEY_JWK = ECAlgorithm.to_jwk(TEST_SIGNING_KEY.public_key())

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", TEST_SIGNING_KEY_JWK)
os.environ.setdefault("RESEND_API_KEY", "re_test_key")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")
os.environ.setdefault("RATE_LIMIT_ANONYMOUS_REQUESTS", "10000")
os.environ.setdefault("RATE_LIMIT_AUTHENTICATED_REQUESTS", "10000")

TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"
TEST_USER_EMAIL = "alice@example.com"
TEST_ORG_ID = "770e8400-e29b-41d4-a716-446655440000"


def create_test_token(
    sub: str = TEST_USER_ID,
    email: str | None = TEST_USER_EMAIL,
    role: str | None = "authenticated",
    exp_offset: int = 3600,
    audience: str = "authenticated",
    key: Any = None,
) -> str:
    """Create an ES256 access token like the ones Supabase Auth issues.

    Args:
        sub: Subject (user ID).
        email: User email.
        role: Role claim.
        exp_offset: Seconds from now for expiration (negative for expired).
        audience: Audience claim.
        key: Private key to sign with. Defaults to the test signing key.

    Returns:
        str: Encoded JWT token.
    """
    now = int(time.time())
    payload = {
        "sub": sub,
        "email": email,
        "role": role,
        "exp": now + exp_offset,
        "iat": now,
        "aud": audience,
        "iss": "https://test-project.supabase.co/auth/v1",
    }
    return jwt.encode(payload, key or TEST_SIGNING_KEY, algorithm="ES256")


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def user_context() -> Any:
    """Provide the acting user's context with a raw access token."""
    from src.schemas.auth import UserContext

    return UserContext(
        user_id=UUID(TEST_USER_ID),
        email=TEST_USER_EMAIL,
        role="authenticated",
        access_token="user-access-token",
    )


@pytest.fixture
def make_response() -> Callable[[Any], MagicMock]:
    """Build a fake PostgREST response carrying ``data``."""

    def _make(data: Any) -> MagicMock:
        response = MagicMock()
        response.data = data
        return response

    return _make


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("src.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization header carrying a valid token for the test user."""
    return {"Authorization": f"Bearer {create_test_token()}"}


class FakeQuery:
    """Chainable stand-in for a PostgREST query or RPC builder.

    Every builder method returns the query itself and is recorded in
    ``calls``. ``execute()`` hands out the queued results in order,
    repeating the last one; a queued exception is raised instead.
    """

    def __init__(self, *results: Any) -> None:
        self.results = list(results) if results else [[]]
        self.calls: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str) -> Callable[..., "FakeQuery"]:
        if name.startswith("__"):
            raise AttributeError(name)

        def builder(*args: Any, **kwargs: Any) -> "FakeQuery":
            self.calls.append((name, args, kwargs))
            return self

        return builder

    def execute(self) -> MagicMock:
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        response = MagicMock()
        response.data = result
        return response

    def called(self, name: str) -> list[tuple[tuple, dict]]:
        """Arguments of every call to the named builder method."""
        return [(args, kwargs) for method, args, kwargs in self.calls if method == name]


class FakeSupabase:
    """Supabase client double with per-table and per-function queries."""

    def __init__(self) -> None:
        self.tables: dict[str, FakeQuery] = {}
        self.rpcs: dict[str, FakeQuery] = {}
        self.rpc_calls: list[tuple[str, dict]] = []

    def table(self, name: str) -> FakeQuery:
        return self.tables.setdefault(name, FakeQuery())

    def rpc(self, name: str, params: dict | None = None) -> FakeQuery:
        self.rpc_calls.append((name, params or {}))
        return self.rpcs.setdefault(name, FakeQuery())

    def rpc_params(self, name: str) -> dict:
        """Parameters of the last call to a database function."""
        return [params for called, params in self.rpc_calls if called == name][-1]


SERVICE_MODULES = (
    "src.services.organization_service",
    "src.services.profile_service",
    "src.services.invitation_service",
    "src.services.general_invite_link_service",
    "src.services.admission_service",
    "src.services.auth_service",
)


@pytest.fixture
def fake_supabase() -> Generator[FakeSupabase, None, None]:
    """Patch every service's privileged client with one shared fake."""
    fake = FakeSupabase()
    with ExitStack() as stack:
        for module in SERVICE_MODULES:
            stack.enter_context(patch(f"{module}.get_supabase_client", return_value=fake))
        yield fake


def storage_error(code: str, message: str = "storage error") -> Exception:
    """Build the error PostgREST raises for a failed query or function."""
    from postgrest.exceptions import APIError

    return APIError({"message": message, "code": code, "hint": None, "details": None})


@pytest.fixture
def query() -> type[FakeQuery]:
    """Expose FakeQuery to tests."""
    return FakeQuery


@pytest.fixture
def make_storage_error() -> Callable[..., Exception]:
    """Expose storage_error to tests."""
    return storage_error


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Expose create_test_token to tests."""
    return create_test_token
