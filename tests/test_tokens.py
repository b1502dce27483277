"""Unit tests for auth/tokens.py -- bcrypt helpers, the RS256 token issuer and the claims Principal."""

from pathlib import Path

import pytest
from jose import jwt

from auth.dependencies import Principal
from auth.errors import ConfigError, PasswordTooLongError
from auth.tokens import TokenIssuer, hash_password, verify_password
from core.config import Settings


class TestPasswordHashing:
    def test_work_factor_is_ten(self) -> None:
        assert hash_password("secret1").startswith("$2b$10$")

    def test_hashes_are_salted(self) -> None:
        assert hash_password("secret1") != hash_password("secret1")

    def test_verify(self) -> None:
        hashed = hash_password("secret1")
        assert verify_password("secret1", hashed) is True
        assert verify_password("secret2", hashed) is False

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("secret1", "not-a-bcrypt-hash") is False

    def test_limit_counts_bytes_not_characters(self) -> None:
        with pytest.raises(PasswordTooLongError):
            hash_password("é" * 72)
        with pytest.raises(PasswordTooLongError):
            hash_password("ü" * 36 + "abc")
        assert hash_password("é" * 36).startswith("$2b$10$")

    def test_oversized_password_never_verifies(self) -> None:
        hashed = hash_password("secret1")
        assert verify_password("é" * 72, hashed) is False


class TestPrincipal:
    def test_roles_are_immutable_and_hashable(self) -> None:
        principal = Principal(user_id="u1", email="a@example.com", roles=("USER", "ADMIN"))
        assert principal.is_admin
        assert hash(principal) == hash(Principal(user_id="u1", email="a@example.com", roles=("USER", "ADMIN")))
        with pytest.raises(AttributeError):
            principal.roles.append("USER")

    def test_defaults_to_no_roles(self) -> None:
        principal = Principal(user_id="u1", email="a@example.com")
        assert principal.roles == ()
        assert not principal.is_admin


class TestTokenIssuer:
    def test_sign_and_verify(self, token_issuer: TokenIssuer) -> None:
        token = token_issuer.sign({"sub": "u1", "email": "a@example.com", "roles": ["USER"]})
        claims = token_issuer.verify(token)
        assert claims["sub"] == "u1"
        assert claims["email"] == "a@example.com"
        assert claims["roles"] == ["USER"]
        assert claims["exp"] - claims["iat"] == token_issuer.expires_in

    def test_uses_rs256(self, token_issuer: TokenIssuer) -> None:
        token = token_issuer.sign({"sub": "u1", "email": "a@example.com", "roles": []})
        assert jwt.get_unverified_header(token)["alg"] == "RS256"

    def test_tampered_token_rejected(self, token_issuer: TokenIssuer) -> None:
        token = token_issuer.sign({"sub": "u1", "email": "a@example.com", "roles": ["USER"]})
        header, payload, signature = token.split(".")
        forged = jwt.encode({"sub": "u1", "email": "a@example.com", "roles": ["ADMIN"]}, "k", algorithm="HS256")
        assert token_issuer.verify(f"{header}.{forged.split('.')[1]}.{signature}") is None

    def test_hs256_token_rejected(self, token_issuer: TokenIssuer) -> None:
        forged = jwt.encode({"sub": "u1", "roles": ["ADMIN"]}, "guessable-secret", algorithm="HS256")
        assert token_issuer.verify(forged) is None

    def test_expired_token_rejected(self, token_issuer: TokenIssuer) -> None:
        expired = TokenIssuer(token_issuer._private_key, token_issuer._public_key, expires_in=-60)
        token = expired.sign({"sub": "u1", "email": "a@example.com", "roles": []})
        assert token_issuer.verify(token) is None

    def test_missing_subject_rejected(self, token_issuer: TokenIssuer) -> None:
        token = token_issuer.sign({"email": "a@example.com", "roles": []})
        assert token_issuer.verify(token) is None

    def test_garbage_rejected(self, token_issuer: TokenIssuer) -> None:
        assert token_issuer.verify("not.a.jwt") is None


class TestFromSettings:
    def test_missing_key_file(self, tmp_path: Path) -> None:
        settings = Settings(
            node_env="test",
            database_url="sqlite:///:memory:",
            jwt_private_key_path=str(tmp_path / "missing.pem"),
            jwt_public_key_path=str(tmp_path / "missing.pub"),
            _env_file=None,
        )
        with pytest.raises(ConfigError, match="private key"):
            TokenIssuer.from_settings(settings)
