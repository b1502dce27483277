"""
auth/tokens.py -- Password hashing and JWT issuance/verification.

Security design decisions:
  JWT: python-jose with RS256. The private key signs, the public key verifies;
       both are PEM files whose paths come from JWT_PRIVATE_KEY_PATH and
       JWT_PUBLIC_KEY_PATH. Tokens carry sub (user id), email, roles, iat and
       exp. They are stateless: nothing is stored server-side. Verification
       returns None on any failure -- the boundary turns that into a 401.

  Passwords: bcrypt directly (no passlib wrapper), work factor 10. The
       _DUMMY_HASH constant lets validate_user_password() spend the same bcrypt
       time on an unknown email as on a wrong password, so response time does
       not reveal whether an account exists.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import ConfigError, PasswordTooLongError

if TYPE_CHECKING:
    from auth.models import User
    from core.config import Settings

logger = logging.getLogger("accounts.auth")

_ALGORITHM = "RS256"

# bcrypt cost factor. 2^10 rounds.
WORK_FACTOR = 10

# bcrypt reads at most 72 bytes of input; bcrypt 5 raises on anything longer.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = WORK_FACTOR) -> str:
    """Return a bcrypt hash of the given plaintext password.

    The limit is in bytes, not characters: 72 accented characters encode to
    144 bytes. Raises PasswordTooLongError rather than letting bcrypt truncate
    or fail with a bare ValueError.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise PasswordTooLongError()
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is treated as a mismatch, not an error. So is a
    plaintext over MAX_PASSWORD_BYTES, which could never have been hashed.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed; treating as mismatch")
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("accounts_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run one bcrypt comparison against a dummy hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Token payload
# ---------------------------------------------------------------------------


def build_token_payload(user: User) -> dict:
    """Claims for a user: subject id, email and role names (never None)."""
    return {
        "sub": user.id,
        "email": user.email,
        "roles": user.role_names,
    }


# ---------------------------------------------------------------------------
# Token issuer
# ---------------------------------------------------------------------------


def _read_key(path: str, label: str) -> str:
    key_path = Path(path).expanduser()
    if not key_path.is_file():
        raise ConfigError(f"{label} not found at {str(key_path)!r}.")
    try:
        return key_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not read {label} at {str(key_path)!r}: {exc}") from exc


class TokenIssuer:
    """Signs and verifies bearer tokens with an RSA key pair.

    Construct once at startup (see api/main.py lifespan) and share. Holds only
    immutable key material, so it is safe to use from any worker thread.
    """

    def __init__(self, private_key: str, public_key: str, expires_in: int = 3600) -> None:
        self._private_key = private_key
        self._public_key = public_key
        self.expires_in = expires_in

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenIssuer:
        """Load the PEM key pair from the configured paths.

        Raises ConfigError if either file is missing or unreadable -- better to
        refuse to start than to fail on the first login.
        """
        private_key = _read_key(settings.jwt_private_key_path, "JWT private key")
        public_key = _read_key(settings.jwt_public_key_path, "JWT public key")
        return cls(private_key, public_key, expires_in=settings.jwt_expires_in)

    def sign(self, payload: dict) -> str:
        """Encode a signed JWT with iat/exp added to the given claims."""
        now = datetime.now(timezone.utc)
        claims = {
            **payload,
            "iat": now,
            "exp": now + timedelta(seconds=self.expires_in),
        }
        return jwt.encode(claims, self._private_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> dict | None:
        """Decode and verify a JWT. Returns the claims dict or None on any failure.

        Returning None (rather than raising) keeps the caller simple: any invalid
        token is treated as unauthenticated.
        """
        try:
            payload = jwt.decode(token, self._public_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if not payload.get("sub"):
            return None
        payload.setdefault("roles", [])
        return payload
