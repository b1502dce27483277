"""
auth/users.py -- User directory service: business rules on top of UserStore.

The store answers "what is in the table"; this layer enforces what the table
does not:
  - create_user rejects a taken email before spending time on bcrypt, and
    always hashes the plaintext (work factor 10).
  - find_by_id turns "absent" into NotFoundError. update_user and delete_user
    call it first, so an unknown id never reaches a store write.
  - validate_user_password never raises on bad credentials. Unknown email and
    wrong password both come back as None, and both cost one bcrypt check.

All methods are synchronous and blocking (bcrypt is CPU-bound, the store does
blocking I/O). FastAPI runs the calling route handlers in its worker thread
pool, so one slow hash does not hold up other requests.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import math

from auth.errors import ConflictError, NotFoundError
from auth.models import User, UserPage
from auth.store import UserStore
from auth.tokens import burn_password_check, hash_password, verify_password
from core.context import SYSTEM_CONTEXT, RequestContext

logger = logging.getLogger("accounts.users")


class UserService:
    """Directory of user accounts.

    Usage:
        users = UserService(UserStore(settings.database_url))
        user = users.create_user("alice@example.com", "secret1")
        page = users.get_users(page=2, limit=10)
    """

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def create_user(self, email: str, password: str, ctx: RequestContext = SYSTEM_CONTEXT) -> User:
        """Create a user with the default role.

        Raises ConflictError if the email is taken. The pre-check is not atomic
        with the insert; a concurrent request that wins the race makes the
        store raise the same ConflictError from its UNIQUE constraint.
        """
        if self.store.exists_by_email(email):
            logger.info("[%s] create_user rejected: email already registered", ctx)
            raise ConflictError("User with this email already exists")

        hashed = hash_password(password)
        try:
            user = self.store.create(email, hashed)
        except ConflictError:
            logger.info("[%s] create_user lost insert race on unique email", ctx)
            raise ConflictError("User with this email already exists") from None
        logger.info("[%s] Created user %s", ctx, user.id)
        return user

    def find_by_email(self, email: str) -> User | None:
        return self.store.get_by_email(email)

    def find_by_id(self, user_id: str) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def find_one(self, **filters) -> User | None:
        return self.store.find_one(**filters)

    def update_user(
        self,
        user_id: str,
        email: str | None = None,
        password: str | None = None,
        ctx: RequestContext = SYSTEM_CONTEXT,
    ) -> User:
        """Update email and/or password. A new password is re-hashed before it is stored."""
        self.find_by_id(user_id)

        fields: dict = {}
        if email is not None:
            fields["email"] = email
        if password:
            fields["password"] = hash_password(password)

        try:
            user = self.store.update(user_id, **fields)
        except ConflictError:
            raise ConflictError("User with this email already exists") from None
        logger.info("[%s] Updated user %s (fields=%s)", ctx, user_id, sorted(fields))
        return user

    def delete_user(self, user_id: str, ctx: RequestContext = SYSTEM_CONTEXT) -> User:
        self.find_by_id(user_id)
        user = self.store.delete(user_id)
        logger.info("[%s] Deleted user %s", ctx, user_id)
        return user

    def get_users(self, page: int = 1, limit: int = 10) -> UserPage:
        """Return a 1-indexed page of users, newest first."""
        if page < 1:
            raise ValueError("page must be >= 1")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        skip = (page - 1) * limit
        users = self.store.list_users(skip=skip, limit=limit)
        total = self.store.count()
        return UserPage(
            users=users,
            total=total,
            page=page,
            total_pages=math.ceil(total / limit),
        )

    def validate_user_password(self, email: str, password: str) -> User | None:
        """Return the user if the password matches, else None.

        The two failure causes (no such email, wrong password) are
        indistinguishable to the caller, both in result and in timing.
        """
        user = self.store.get_by_email(email)
        if user is None:
            burn_password_check(password)
            return None
        return user if verify_password(password, user.password) else None
