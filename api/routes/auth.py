"""
api/routes/auth.py -- Registration, login and profile endpoints.

Routes:
  POST /auth/register   -- create account; 201 {user, access_token}; 409 on duplicate email
  POST /auth/login      -- password login; 200 {user, access_token}; 401 on bad credentials
  GET  /auth/profile    -- current user's record (Bearer token required)

Handlers are plain `def`, not `async def`: bcrypt and the SQLAlchemy store
block, and FastAPI runs sync handlers in its worker thread pool so one hash
does not stall the event loop.

Business errors (ConflictError, UnauthorizedError, NotFoundError) propagate
out of the services untouched; the AccountServiceError handler in api/main.py
renders them.

Security:
  Login returns the same 401 body for unknown email and wrong password.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from auth.dependencies import Principal, get_current_claims, get_request_context
from auth.models import AuthResult
from auth.service import AuthService
from core.context import RequestContext

# Auth policy:
# - POST /auth/register: public
# - POST /auth/login:    public
# - GET  /auth/profile:  requires auth (get_current_claims)
router = APIRouter()


def _auth_response(result: AuthResult, response: Response) -> AuthResponse:
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse(user=UserResponse.from_public(result.user), access_token=result.access_token)


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(
    request: Request,
    response: Response,
    body: RegisterRequest,
    ctx: RequestContext = Depends(get_request_context),
) -> AuthResponse:
    """Create an account with the default USER role and return a signed token."""
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.register(body.email, body.password, ctx=ctx)
    return _auth_response(result, response)


@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    ctx: RequestContext = Depends(get_request_context),
) -> AuthResponse:
    """Authenticate with email and password; return a signed token."""
    auth_service: AuthService = request.app.state.auth_service
    result = auth_service.login(body.email, body.password, ctx=ctx)
    return _auth_response(result, response)


@router.get("/auth/profile", response_model=UserResponse)
def profile(
    request: Request,
    principal: Principal = Depends(get_current_claims),
    ctx: RequestContext = Depends(get_request_context),
) -> UserResponse:
    """Return the authenticated user's record. 404 if the account was deleted after the token was issued."""
    auth_service: AuthService = request.app.state.auth_service
    return UserResponse.from_public(auth_service.get_profile(principal.user_id, ctx=ctx))
