"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method exists: an Authorization: Bearer <token> header carrying
an RS256 JWT issued by TokenIssuer. Tokens are stateless, so these helpers do
not touch the database -- they trust the verified claims. Routes that need the
live record (e.g. GET /auth/profile) fetch it themselves.

try_get_current_claims() is the soft variant (returns None on failure).
get_current_claims() wraps it and raises UnauthorizedError if unauthenticated.
require_self_or_admin() additionally raises ForbiddenError when a non-admin
acts on someone else's account.

auth/dependencies.py may import from fastapi (for Request) because this module
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Request

from auth.errors import ForbiddenError, UnauthorizedError
from auth.models import Role
from auth.tokens import TokenIssuer
from core.context import RequestContext


@dataclass(frozen=True)
class Principal:
    """The identity proven by a verified bearer token."""

    user_id: str
    email: str
    roles: tuple[str, ...] = ()

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN.value in self.roles


def get_request_context(request: Request) -> RequestContext:
    """Return the RequestContext the request-id middleware attached to this request."""
    ctx = getattr(request.state, "ctx", None)
    return ctx if ctx is not None else RequestContext()


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def try_get_current_claims(request: Request) -> Principal | None:
    """Verify the Bearer token, if any. Never raises."""
    token = _bearer_token(request)
    if token is None:
        return None
    issuer: TokenIssuer = request.app.state.token_issuer
    payload = issuer.verify(token)
    if payload is None:
        return None
    return Principal(
        user_id=str(payload["sub"]),
        email=payload.get("email", ""),
        roles=tuple(payload.get("roles") or ()),
    )


def get_current_claims(request: Request) -> Principal:
    """Require authentication. Raises UnauthorizedError (401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_claims)): ...
    """
    principal = try_get_current_claims(request)
    if principal is None:
        raise UnauthorizedError("Authentication required.")
    return principal


def require_admin(principal: Principal = Depends(get_current_claims)) -> Principal:
    """Require the ADMIN role. 401 if unauthenticated, 403 if not admin."""
    if not principal.is_admin:
        raise ForbiddenError("Admin access required.")
    return principal


def require_self_or_admin(user_id: str, principal: Principal = Depends(get_current_claims)) -> Principal:
    """Allow the account owner or an admin. user_id is the route's path parameter."""
    if principal.user_id != user_id and not principal.is_admin:
        raise ForbiddenError()
    return principal
