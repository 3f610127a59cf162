"""
api/routes/v1/admin.py -- Administrator endpoints.

Routes:
  GET  /api/admin/dashboard      -- platform totals
  GET  /api/admin/users          -- filterable, sortable user listing
  GET  /api/admin/users/{id}     -- user detail (+ store aggregates for owners)
  POST /api/admin/users          -- create a user with any role
  GET  /api/admin/stores         -- filterable, sortable store listing
  POST /api/admin/stores         -- create a store and its owner account
  GET  /api/admin/ratings        -- filterable, sortable rating listing

Every route on this router requires role admin. The policy is declared once
on the router; no handler checks roles itself.

Listing filters and sort keys come straight from the query string and are
passed to the Listing Query Builder, which applies its own allow-lists.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import (
    AdminDashboardResponse,
    AdminStats,
    AdminStoreCreate,
    AdminUserCreate,
    RatingListResponse,
    RatingRow,
    StoreCreatedResponse,
    StoreListResponse,
    StoreRow,
    UserCreatedResponse,
    UserDetail,
    UserDetailResponse,
    UserListResponse,
    UserRow,
)
from api.routes.common import listing_params, user_response
from api.routes.v1.auth import DUPLICATE_EMAIL_MESSAGE
from auth.dependencies import ADMIN_ONLY, require_roles
from auth.models import ROLE_STORE_OWNER, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.errors import InvalidInput, NotFound
from ratings.models import Store
from ratings.store import RatingStore

logger = logging.getLogger("storerater.api")

# Auth policy: every route requires role admin (router-level dependency).
router = APIRouter(dependencies=[Depends(require_roles(ADMIN_ONLY))])


def _duplicate_email(field: str) -> InvalidInput:
    return InvalidInput(DUPLICATE_EMAIL_MESSAGE, errors=[{"field": field, "message": DUPLICATE_EMAIL_MESSAGE}])


def _is_reserved_email(request: Request, email: str) -> bool:
    return email.lower() == request.app.state.settings.admin_email.strip().lower()


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


@router.get("/admin/dashboard")
def dashboard(request: Request) -> JSONResponse:
    """Return totalUsers, totalStores and totalRatings.

    totalUsers counts stored accounts only; the bootstrap admin is not one.
    """
    user_store: UserStore = request.app.state.user_store
    rating_store: RatingStore = request.app.state.rating_store
    body = AdminDashboardResponse(
        stats=AdminStats(
            total_users=user_store.count_users(),
            total_stores=rating_store.count_stores(),
            total_ratings=rating_store.count_ratings(),
        )
    )
    return JSONResponse(content=body.model_dump(by_alias=True))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=UserListResponse)
def list_users(request: Request) -> UserListResponse:
    """List users. Filters: name, email, address, role. Sort: sortBy, sortOrder."""
    user_store: UserStore = request.app.state.user_store
    filters, sort = listing_params(request)
    rows = user_store.list_users(filters, sort)
    return UserListResponse(count=len(rows), users=[UserRow(**row) for row in rows])


@router.get("/admin/users/{user_id}", response_model=UserDetailResponse)
def get_user(request: Request, user_id: int) -> UserDetailResponse:
    """Return one user. Store owners also carry their store's rating aggregates."""
    user_store: UserStore = request.app.state.user_store
    rating_store: RatingStore = request.app.state.rating_store

    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found")

    detail = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "address": user.address,
        "role": user.role,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }
    if user.role == ROLE_STORE_OWNER:
        store = rating_store.get_store_by_owner(user.id)
        if store is not None:
            aggregate = rating_store.aggregate_for_store(store.id)
            detail.update(
                store_id=store.id,
                store_name=store.name,
                average_rating=aggregate.average_rating,
                total_ratings=aggregate.total_ratings,
            )
    return UserDetailResponse(user=UserDetail(**detail))


@router.post("/admin/users", response_model=UserCreatedResponse, status_code=201)
def create_user(request: Request, body: AdminUserCreate) -> UserCreatedResponse:
    """Create an account with any role. Duplicate email -> 400."""
    user_store: UserStore = request.app.state.user_store

    email = str(body.email).lower()
    if _is_reserved_email(request, email):
        raise _duplicate_email("email")

    user = User(
        name=body.name,
        email=email,
        role=body.role.value,
        hashed_password=hash_password(body.password),
        address=body.address,
    )
    try:
        user_id = user_store.create_user(user)
    except IntegrityError:
        raise _duplicate_email("email") from None

    logger.info("Admin created user %s with role %s", user_id, user.role)
    created = user_store.get_by_id(user_id)
    return UserCreatedResponse(message="User created successfully", user=user_response(created))


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@router.get("/admin/stores", response_model=StoreListResponse)
def list_stores(request: Request) -> StoreListResponse:
    """List stores with owner and aggregates. Filters: name, email, address."""
    rating_store: RatingStore = request.app.state.rating_store
    filters, sort = listing_params(request)
    rows = rating_store.list_stores(filters, sort)
    return StoreListResponse(count=len(rows), stores=[StoreRow(**row) for row in rows])


@router.post("/admin/stores", response_model=StoreCreatedResponse, status_code=201)
def create_store(request: Request, body: AdminStoreCreate) -> StoreCreatedResponse:
    """Create a store together with a new store_owner account.

    Both rows are written in one transaction; a duplicate owner email leaves
    nothing behind.
    """
    user_store: UserStore = request.app.state.user_store
    rating_store: RatingStore = request.app.state.rating_store

    owner_email = str(body.owner_email).lower()
    if _is_reserved_email(request, owner_email):
        raise _duplicate_email("owner_email")

    owner = User(
        name=body.owner_name,
        email=owner_email,
        role=ROLE_STORE_OWNER,
        hashed_password=hash_password(body.temporary_password),
        address=body.address,
    )
    store = Store(
        name=body.name,
        email=str(body.email).lower(),
        description=body.description,
        address=body.address,
    )
    try:
        store_id, owner_id = rating_store.create_store_with_owner(store, owner)
    except IntegrityError:
        raise _duplicate_email("owner_email") from None

    summary = rating_store.get_store_summary(store_id)
    created_owner = user_store.get_by_id(owner_id)
    return StoreCreatedResponse(
        message="Store created successfully",
        store=StoreRow(**summary),
        owner=user_response(created_owner),
    )


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------


@router.get("/admin/ratings", response_model=RatingListResponse)
def list_ratings(request: Request) -> RatingListResponse:
    """List every rating. Filters: comment, rating, store_name, user_name, user_email."""
    rating_store: RatingStore = request.app.state.rating_store
    filters, sort = listing_params(request)
    rows = rating_store.list_ratings(filters, sort)
    return RatingListResponse(count=len(rows), ratings=[RatingRow(**row) for row in rows])
