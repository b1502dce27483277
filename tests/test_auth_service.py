"""Unit tests for auth/service.py -- register, login, profile.

Covers the end-to-end scenario:
  register alice -> token decodes to {email, roles: ["USER"]}
  register alice again -> ConflictError
  login with wrong password -> UnauthorizedError
  login with correct password -> token subject is alice's id
plus the indistinguishability of the two login failure causes and the
"no password field, ever" rule on returned users.
"""

import pytest

from auth.errors import ConflictError, NotFoundError, UnauthorizedError
from auth.models import User
from auth.service import AuthService
from auth.tokens import TokenIssuer, build_token_payload
from core.context import RequestContext

EMAIL = "alice@example.com"
PASSWORD = "secret1"


class TestRegister:
    def test_returns_user_without_password(self, auth_service: AuthService) -> None:
        result = auth_service.register(EMAIL, PASSWORD)
        assert "password" not in result.user
        assert result.user["email"] == EMAIL
        assert [r["role"] for r in result.user["roles"]] == ["USER"]
        assert result.access_token

    def test_token_claims(self, auth_service: AuthService, token_issuer: TokenIssuer) -> None:
        result = auth_service.register(EMAIL, PASSWORD)
        claims = token_issuer.verify(result.access_token)
        assert claims["email"] == EMAIL
        assert claims["roles"] == ["USER"]
        assert claims["sub"] == result.user["id"]
        assert "password" not in claims

    def test_duplicate_email(self, auth_service: AuthService) -> None:
        auth_service.register(EMAIL, PASSWORD)
        with pytest.raises(ConflictError):
            auth_service.register(EMAIL, "different1")

    def test_accepts_request_context(self, auth_service: AuthService) -> None:
        result = auth_service.register(EMAIL, PASSWORD, ctx=RequestContext(request_id="req-1"))
        assert result.user["email"] == EMAIL


class TestLogin:
    def test_correct_credentials(self, auth_service: AuthService, token_issuer: TokenIssuer) -> None:
        registered = auth_service.register(EMAIL, PASSWORD)
        result = auth_service.login(EMAIL, PASSWORD)
        assert "password" not in result.user
        claims = token_issuer.verify(result.access_token)
        assert claims["sub"] == registered.user["id"]
        assert claims["roles"] == ["USER"]

    def test_wrong_password(self, auth_service: AuthService) -> None:
        auth_service.register(EMAIL, PASSWORD)
        with pytest.raises(UnauthorizedError, match="Invalid credentials"):
            auth_service.login(EMAIL, "wrong-password")

    def test_failure_causes_are_indistinguishable(self, auth_service: AuthService) -> None:
        auth_service.register(EMAIL, PASSWORD)
        with pytest.raises(UnauthorizedError) as wrong_password:
            auth_service.login(EMAIL, "wrong-password")
        with pytest.raises(UnauthorizedError) as unknown_email:
            auth_service.login("nobody@example.com", PASSWORD)
        assert wrong_password.value.message == unknown_email.value.message == "Invalid credentials"
        assert wrong_password.value.code == unknown_email.value.code
        assert wrong_password.value.status_code == unknown_email.value.status_code == 401

    def test_login_after_password_change(self, auth_service: AuthService) -> None:
        registered = auth_service.register(EMAIL, PASSWORD)
        auth_service.users.update_user(registered.user["id"], password="newsecret2")
        assert auth_service.login(EMAIL, "newsecret2").user["id"] == registered.user["id"]
        with pytest.raises(UnauthorizedError):
            auth_service.login(EMAIL, PASSWORD)


class TestProfile:
    def test_profile_has_no_password(self, auth_service: AuthService) -> None:
        registered = auth_service.register(EMAIL, PASSWORD)
        profile = auth_service.get_profile(registered.user["id"])
        assert profile["id"] == registered.user["id"]
        assert profile["email"] == EMAIL
        assert "password" not in profile

    def test_profile_missing_user(self, auth_service: AuthService) -> None:
        with pytest.raises(NotFoundError):
            auth_service.get_profile("missing")


class TestTokenPayload:
    def test_user_without_roles_gets_empty_list(self) -> None:
        user = User(id="u1", email="legacy@example.com", password="x", roles=[])
        assert build_token_payload(user) == {"sub": "u1", "email": "legacy@example.com", "roles": []}

    def test_roles_none_still_gives_list(self) -> None:
        user = User(id="u2", email="legacy@example.com", password="x")
        user.roles = None
        assert build_token_payload(user)["roles"] == []
