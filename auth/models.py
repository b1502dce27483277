"""
auth/models.py -- Domain dataclasses for account entities.

Pattern: Data class (pure data container, almost zero logic). Stores and
services do the work; these own the domain shape.

The password field holds the bcrypt hash and must never leave the service
layer. without_password() is the single place that strips it -- every caller
that hands a user to the outside world goes through it.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


DEFAULT_ROLE = Role.USER


@dataclass
class UserRole:
    """One role assignment. A user has zero or more of these."""

    user_id: str
    role: Role
    id: int | None = None
    created_at: str | None = None


@dataclass
class User:
    """An account identity.

    id is an opaque string (UUID4) assigned by the store on insert.
    password is the bcrypt hash, never the plaintext.
    """

    email: str
    password: str
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    roles: list[UserRole] = field(default_factory=list)

    @property
    def role_names(self) -> list[str]:
        # Records without assignments yield [] (never None).
        return [r.role.value for r in self.roles or []]

    def has_role(self, role: Role) -> bool:
        return role.value in self.role_names

    def without_password(self) -> dict:
        """Return the user as a plain dict with the password field removed."""
        data = asdict(self)
        data.pop("password", None)
        data["roles"] = [{**r, "role": r["role"].value} for r in data["roles"]]
        return data


@dataclass
class UserPage:
    """One page of users plus the summary numbers clients need to paginate."""

    users: list[User]
    total: int
    page: int
    total_pages: int


@dataclass
class AuthResult:
    """Outcome of register/login: the public user record and a signed token."""

    user: dict
    access_token: str
