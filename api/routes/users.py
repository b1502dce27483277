"""
api/routes/users.py -- User management endpoints.

Routes:
  GET    /users             -- paginated list, newest first (admin only)
  GET    /users/{user_id}   -- one user (owner or admin)
  PATCH  /users/{user_id}   -- change email and/or password (owner or admin)
  DELETE /users/{user_id}   -- delete account (owner or admin)

Existence, re-hashing and uniqueness rules live in UserService; these handlers
only authorize, call, and map to response models.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.models import UserListResponse, UserPatch, UserResponse
from auth.dependencies import Principal, get_request_context, require_admin, require_self_or_admin
from auth.users import UserService
from core.context import RequestContext

# Auth policy:
# - GET    /users:             requires admin (require_admin)
# - GET    /users/{user_id}:   owner or admin (require_self_or_admin)
# - PATCH  /users/{user_id}:   owner or admin (require_self_or_admin)
# - DELETE /users/{user_id}:   owner or admin (require_self_or_admin)
router = APIRouter()


@router.get("/users", response_model=UserListResponse)
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    principal: Principal = Depends(require_admin),
) -> UserListResponse:
    user_service: UserService = request.app.state.user_service
    return UserListResponse.from_page(user_service.get_users(page=page, limit=limit))


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    principal: Principal = Depends(require_self_or_admin),
) -> UserResponse:
    user_service: UserService = request.app.state.user_service
    return UserResponse.from_public(user_service.find_by_id(user_id).without_password())


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    principal: Principal = Depends(require_self_or_admin),
    ctx: RequestContext = Depends(get_request_context),
) -> UserResponse:
    """Update email and/or password. A new password is re-hashed by the service."""
    user_service: UserService = request.app.state.user_service
    user = user_service.update_user(user_id, email=body.email, password=body.password, ctx=ctx)
    return UserResponse.from_public(user.without_password())


@router.delete("/users/{user_id}", response_model=UserResponse)
def delete_user(
    request: Request,
    user_id: str,
    principal: Principal = Depends(require_self_or_admin),
    ctx: RequestContext = Depends(get_request_context),
) -> UserResponse:
    """Delete the account and return the removed record.

    Tokens already issued for it stay valid until they expire (no revocation);
    GET /auth/profile with such a token returns 404.
    """
    user_service: UserService = request.app.state.user_service
    return UserResponse.from_public(user_service.delete_user(user_id, ctx=ctx).without_password())
