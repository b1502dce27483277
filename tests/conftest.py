"""
tests/conftest.py -- Shared test fixtures for the account service.

This module provides:
  - a throwaway RSA key pair written to a temp dir (JWT_*_KEY_PATH point at it)
  - store / user_service / token_issuer / auth_service: unit-level fixtures
    backed by a fresh in-memory SQLite database per test
  - api_client: TestClient over the real FastAPI app with a patched lifespan
    that wires the same in-memory services into app.state
  - make_user(): create a user (optionally ADMIN) and a bearer token for it

Environment variables must be set before any api/ or core/ import:
get_settings() validates required settings on first call and api.main reads
them at import time. RATE_LIMIT_ENABLED=false keeps the 10-per-6-seconds
limiter from tripping on multi-request tests.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# ---------------------------------------------------------------------------
# Key pair + environment (before any app import)
# ---------------------------------------------------------------------------


def _write_key_pair(directory: Path) -> tuple[Path, Path]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path = directory / "jwt_private.pem"
    public_path = directory / "jwt_public.pem"
    private_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    public_path.write_bytes(
        key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return private_path, public_path


_KEY_DIR = Path(tempfile.mkdtemp(prefix="accounts-test-keys-"))
PRIVATE_KEY_PATH, PUBLIC_KEY_PATH = _write_key_pair(_KEY_DIR)

os.environ["NODE_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_PRIVATE_KEY_PATH"] = str(PRIVATE_KEY_PATH)
os.environ["JWT_PUBLIC_KEY_PATH"] = str(PUBLIC_KEY_PATH)
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from api.main import app  # noqa: E402
from auth.models import Role, User  # noqa: E402
from auth.service import AuthService  # noqa: E402
from auth.store import UserStore  # noqa: E402
from auth.tokens import TokenIssuer, build_token_payload  # noqa: E402
from auth.users import UserService  # noqa: E402
from core.config import get_settings  # noqa: E402

# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Fresh in-memory UserStore (StaticPool -- one shared connection)."""
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def user_service(store: UserStore) -> UserService:
    return UserService(store)


@pytest.fixture(scope="session")
def token_issuer() -> TokenIssuer:
    return TokenIssuer.from_settings(get_settings())


@pytest.fixture
def auth_service(user_service: UserService, token_issuer: TokenIssuer) -> AuthService:
    return AuthService(user_service, token_issuer)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    user_service: UserService
    token_issuer: TokenIssuer


def _patch_lifespan(store: UserStore, user_service: UserService, token_issuer: TokenIssuer):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test services into app.state so TestClient routes see
    the isolated in-memory database rather than DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.token_issuer = token_issuer
        app.state.user_store = store
        app.state.user_service = user_service
        app.state.auth_service = AuthService(user_service, token_issuer)
        yield

    return test_lifespan


@pytest.fixture
def api(store: UserStore, user_service: UserService, token_issuer: TokenIssuer) -> Generator[ApiContext, None, None]:
    """Yield an ApiContext whose client talks to the real app over a fresh database."""
    app.router.lifespan_context = _patch_lifespan(store, user_service, token_issuer)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(client=client, store=store, user_service=user_service, token_issuer=token_issuer)


@pytest.fixture
def make_user(user_service: UserService, token_issuer: TokenIssuer) -> Callable[..., tuple[User, dict]]:
    """Return a factory: make_user(email, password="secret1", admin=False) -> (user, auth headers)."""

    def _make(email: str, password: str = "secret1", admin: bool = False) -> tuple[User, dict]:
        user = user_service.create_user(email, password)
        if admin:
            user = user_service.store.add_role(user.id, Role.ADMIN)
        token = token_issuer.sign(build_token_payload(user))
        return user, {"Authorization": f"Bearer {token}"}

    return _make
