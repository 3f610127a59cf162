"""
auth/dependencies.py -- Auth Gate and Authorization Policy.

authenticate() is the gate: Authorization header -> Principal, or
Unauthenticated. It is a plain function over a header mapping so it can be
unit-tested without a request; get_current_principal() is the FastAPI
Depends() adapter that wires in the services from app.state and stores the
result on request.state.principal.

authorize() is the policy: exact membership of the principal's role in the
route's declared role set. There is no hierarchy -- an admin-only route does
not admit store owners, and a normal_user route does not admit admins.
require_roles() turns a role set into a dependency declared once per router:

    router = APIRouter(dependencies=[Depends(require_roles(ADMIN_ONLY))])

Every failure message is generic. The specific reason (bad signature,
expired, deleted user) is logged at INFO and never returned to the client.

Layer rule: no imports from api/, db/, or ratings/.
  auth/dependencies.py may import from fastapi because this module is part of
  the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from fastapi import Depends, Request

from auth.models import (
    ROLE_ADMIN,
    ROLE_NORMAL_USER,
    ROLE_STORE_OWNER,
    ROLES,
    AdminPrincipal,
    Principal,
    UserPrincipal,
)
from auth.store import UserStore
from auth.tokens import TokenService
from core.errors import Forbidden, InvalidToken, Unauthenticated

logger = logging.getLogger("storerater.auth")

# Declared route policies. Exact-set membership, see authorize().
ADMIN_ONLY: frozenset[str] = frozenset({ROLE_ADMIN})
STORE_OWNER_ONLY: frozenset[str] = frozenset({ROLE_STORE_OWNER})
NORMAL_USER_ONLY: frozenset[str] = frozenset({ROLE_NORMAL_USER})
ANY_ROLE: frozenset[str] = ROLES

_MISSING_MESSAGE = "Not authorized to access this route. Please login."
_INVALID_MESSAGE = "Not authorized to access this route"


def extract_bearer_token(headers: Mapping[str, str]) -> str:
    """Return the token from an "Authorization: Bearer <token>" header.

    Raises Unauthenticated if the header is absent or not exactly two parts
    with a Bearer scheme.
    """
    auth_header = headers.get("authorization") or headers.get("Authorization")
    if not auth_header:
        raise Unauthenticated(_MISSING_MESSAGE)
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.info("Rejected malformed Authorization header")
        raise Unauthenticated(_MISSING_MESSAGE)
    return parts[1]


def authenticate(
    headers: Mapping[str, str],
    token_service: TokenService,
    user_store: UserStore,
    admin_name: str = "Administrator",
    admin_email: str = "admin@abc.com",
) -> Principal:
    """Resolve the Principal for a request or raise Unauthenticated.

    Order matters: the bootstrap admin branch runs before any storage lookup,
    so the sentinel identity never reaches the users table.
    """
    token = extract_bearer_token(headers)
    try:
        claims = token_service.verify(token)
    except InvalidToken as exc:
        logger.info("Rejected token: %s", exc)
        raise Unauthenticated(_INVALID_MESSAGE) from None

    if claims.is_admin_sentinel:
        return AdminPrincipal(name=admin_name, email=admin_email)

    if not isinstance(claims.subject_id, int):
        # "admin" subject paired with a non-admin role.
        logger.info("Rejected token: sentinel subject with role %s", claims.role)
        raise Unauthenticated(_INVALID_MESSAGE)

    user = user_store.get_by_id(claims.subject_id)
    if user is None:
        logger.info("Rejected token: user %s no longer exists", claims.subject_id)
        raise Unauthenticated(_INVALID_MESSAGE)
    if user.role != claims.role:
        logger.info("Rejected token: role for user %s changed since issue", claims.subject_id)
        raise Unauthenticated(_INVALID_MESSAGE)
    return UserPrincipal(user=user)


def authorize(principal: Principal, allowed_roles: frozenset[str]) -> None:
    """Raise Forbidden unless principal.role is a member of allowed_roles."""
    if principal.role not in allowed_roles:
        raise Forbidden(f"User role '{principal.role}' is not authorized to access this route")


# ---------------------------------------------------------------------------
# FastAPI adapters
# ---------------------------------------------------------------------------


def get_current_principal(request: Request) -> Principal:
    """Require authentication. Raises Unauthenticated (401) on any failure.

    Use as a FastAPI dependency:
        @router.get("/me")
        def route(principal: Principal = Depends(get_current_principal)): ...

    FastAPI caches a dependency per request, so a router-level require_roles()
    and a handler-level get_current_principal() resolve the token only once.
    """
    settings = request.app.state.settings
    principal = authenticate(
        request.headers,
        request.app.state.token_service,
        request.app.state.user_store,
        admin_name=settings.admin_name,
        admin_email=settings.admin_email,
    )
    request.state.principal = principal
    return principal


def require_roles(allowed_roles: frozenset[str]) -> Callable[..., Principal]:
    """Build a dependency that authenticates and then applies authorize()."""
    unknown = set(allowed_roles) - ROLES
    if unknown:
        raise ValueError(f"Unknown roles in route policy: {sorted(unknown)!r}")

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        authorize(principal, allowed_roles)
        return principal

    return dependency
