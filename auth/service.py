"""
auth/service.py -- Authentication service: register, login, profile.

Orchestrates UserService (accounts) and TokenIssuer (signed bearer tokens).
Every user object it returns has gone through User.without_password().

Login failures always raise UnauthorizedError("Invalid credentials"). The
message is identical for an unknown email and a wrong password -- do not add
detail here, it would let callers enumerate accounts.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.errors import UnauthorizedError
from auth.models import AuthResult, User
from auth.tokens import TokenIssuer, build_token_payload
from auth.users import UserService
from core.context import SYSTEM_CONTEXT, RequestContext

logger = logging.getLogger("accounts.auth")

INVALID_CREDENTIALS = "Invalid credentials"


class AuthService:
    def __init__(self, users: UserService, tokens: TokenIssuer) -> None:
        self.users = users
        self.tokens = tokens

    def register(self, email: str, password: str, ctx: RequestContext = SYSTEM_CONTEXT) -> AuthResult:
        """Create an account and sign a token for it. Propagates ConflictError."""
        user = self.users.create_user(email, password, ctx=ctx)
        logger.info("[%s] Registered user %s", ctx, user.id)
        return self._issue(user)

    def login(self, email: str, password: str, ctx: RequestContext = SYSTEM_CONTEXT) -> AuthResult:
        user = self.users.validate_user_password(email, password)
        if user is None:
            logger.warning("[%s] Failed login attempt", ctx)
            raise UnauthorizedError(INVALID_CREDENTIALS)
        logger.info("[%s] User %s logged in", ctx, user.id)
        return self._issue(user)

    def get_profile(self, user_id: str, ctx: RequestContext = SYSTEM_CONTEXT) -> dict:
        """Return the user's record without the password. Propagates NotFoundError."""
        user = self.users.find_by_id(user_id)
        logger.debug("[%s] Profile read for %s", ctx, user_id)
        return user.without_password()

    def _issue(self, user: User) -> AuthResult:
        token = self.tokens.sign(build_token_payload(user))
        return AuthResult(user=user.without_password(), access_token=token)
