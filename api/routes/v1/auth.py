"""
api/routes/v1/auth.py -- Signup, login and account endpoints.

Routes:
  POST /api/auth/signup            -- register a normal_user; returns token
  POST /api/auth/login             -- email/password login; returns token
  GET  /api/auth/me                -- current principal (any role)
  POST /api/auth/logout            -- stateless; client discards the token
  POST /api/auth/change-password   -- normal_user and store_owner only

Security:
  authenticate_user() provides timing equalization -- use it, never inline
  get_by_email() + verify_password().
  Login checks the configured admin credentials first, so the sentinel admin
  identity can never be shadowed by a stored user with the same email.
  Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    ErrorResponse,
    LoginRequest,
    MeResponse,
    MessageResponse,
    SignupRequest,
)
from api.routes.common import user_response
from auth.dependencies import ANY_ROLE, require_roles
from auth.models import ADMIN_SUBJECT, ROLE_ADMIN, ROLE_NORMAL_USER, AdminPrincipal, Principal, User, UserPrincipal
from auth.store import UserStore
from auth.tokens import TokenService, authenticate_admin, authenticate_user, hash_password, verify_password
from core.errors import InvalidInput

logger = logging.getLogger("storerater.api")

# Auth policy:
# - POST /api/auth/signup:           public
# - POST /api/auth/login:            public
# - GET  /api/auth/me:               any role
# - POST /api/auth/logout:           any role
# - POST /api/auth/change-password:  normal_user, store_owner
router = APIRouter()

DUPLICATE_EMAIL_MESSAGE = "User already exists with this email"


def _token_response(status_code: int, message: str, token: str, principal: Principal | User) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(message=message, token=token, user=user_response(principal)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a new normal_user account and log it in.

    The role is not taken from the body. Admins create other roles through
    POST /api/admin/users.
    """
    user_store: UserStore = request.app.state.user_store
    token_service: TokenService = request.app.state.token_service
    settings = request.app.state.settings

    email = str(body.email).lower()
    if email == settings.admin_email.strip().lower() or user_store.get_by_email(email) is not None:
        raise InvalidInput(DUPLICATE_EMAIL_MESSAGE, errors=[{"field": "email", "message": DUPLICATE_EMAIL_MESSAGE}])

    user = User(
        name=body.name,
        email=email,
        role=ROLE_NORMAL_USER,
        hashed_password=hash_password(body.password),
        address=body.address,
    )
    try:
        user.id = user_store.create_user(user)
    except IntegrityError:
        # Lost a race with a concurrent signup for the same email.
        raise InvalidInput(
            DUPLICATE_EMAIL_MESSAGE, errors=[{"field": "email", "message": DUPLICATE_EMAIL_MESSAGE}]
        ) from None

    logger.info("User %s signed up", user.id)
    created = user_store.get_by_id(user.id) or user
    token = token_service.issue(created.id, created.role)
    return _token_response(201, "User registered successfully", token, created)


@router.post("/auth/login", response_model=AuthResponse, responses={401: {"model": ErrorResponse}})
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Wrong email and wrong password produce the same 401 so the response does
    not reveal which accounts exist.
    """
    settings = request.app.state.settings
    token_service: TokenService = request.app.state.token_service
    user_store: UserStore = request.app.state.user_store

    if authenticate_admin(settings, body.email, body.password):
        admin = AdminPrincipal(name=settings.admin_name, email=settings.admin_email)
        token = token_service.issue(ADMIN_SUBJECT, ROLE_ADMIN)
        logger.info("Bootstrap admin logged in")
        return _token_response(200, "Login successful", token, admin)

    user = authenticate_user(user_store, body.email, body.password)
    if user is None:
        logger.info("Failed login attempt")
        resp = JSONResponse(status_code=401, content=ErrorResponse(message="Invalid credentials").model_dump())
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = token_service.issue(user.id, user.role)
    return _token_response(200, "Login successful", token, user)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
def me(principal: Principal = Depends(require_roles(ANY_ROLE))) -> MeResponse:
    """Return identity information for the current principal."""
    return MeResponse(user=user_response(principal))


@router.post("/auth/logout", response_model=MessageResponse)
def logout(principal: Principal = Depends(require_roles(ANY_ROLE))) -> MessageResponse:
    """Acknowledge logout. Tokens are stateless; the client discards its copy."""
    return MessageResponse(message="Logged out successfully")


@router.post("/auth/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    principal: Principal = Depends(require_roles(ANY_ROLE)),
) -> MessageResponse:
    """Replace the caller's password after re-checking the current one.

    Open to every role. The configured admin has no stored password, so it
    gets a 400 rather than a role rejection.
    """
    if not isinstance(principal, UserPrincipal):
        raise InvalidInput("Password cannot be changed for this account")
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(principal.id)
    if user is None or user.hashed_password is None:
        raise InvalidInput("Password cannot be changed for this account")

    if not verify_password(body.current_password, user.hashed_password):
        raise InvalidInput(
            "Current password is incorrect",
            errors=[{"field": "currentPassword", "message": "Current password is incorrect"}],
        )
    if body.current_password == body.new_password:
        raise InvalidInput(
            "New password must be different from the current password",
            errors=[{"field": "newPassword", "message": "New password must be different from the current password"}],
        )

    user_store.update_password(user.id, hash_password(body.new_password))
    logger.info("User %s changed password", user.id)
    return MessageResponse(message="Password changed successfully")
