"""
api/routes/v1/store_owner.py -- Store owner endpoints.

Routes:
  GET /api/store-owner/dashboard  -- store, aggregates and its ratings
  GET /api/store-owner/store      -- the owner's store with aggregates
  GET /api/store-owner/ratings    -- ratings of the owner's store with rater info

Every route requires role store_owner and is scoped to the store whose
owner_id is the caller. An owner account without a store gets 404.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import (
    OwnerDashboard,
    OwnerDashboardResponse,
    OwnerStoreInfo,
    RatingListResponse,
    RatingRow,
    RatingStats,
    StoreResponse,
    StoreRow,
)
from api.routes.common import listing_params
from auth.dependencies import STORE_OWNER_ONLY, require_roles
from auth.models import Principal
from core.errors import NotFound
from ratings.models import Store
from ratings.store import RatingStore

# Auth policy: every route requires role store_owner (router-level dependency).
_require_store_owner = require_roles(STORE_OWNER_ONLY)
router = APIRouter(dependencies=[Depends(_require_store_owner)])


def _owned_store(rating_store: RatingStore, principal: Principal) -> Store:
    store = rating_store.get_store_by_owner(principal.id)
    if store is None:
        raise NotFound("No store found for this owner")
    return store


@router.get("/store-owner/dashboard", response_model=OwnerDashboardResponse)
def dashboard(request: Request, principal: Principal = Depends(_require_store_owner)) -> OwnerDashboardResponse:
    rating_store: RatingStore = request.app.state.rating_store
    store = _owned_store(rating_store, principal)
    aggregate = rating_store.aggregate_for_store(store.id)
    rows = rating_store.list_ratings(scope={"store_id": store.id})
    return OwnerDashboardResponse(
        data=OwnerDashboard(
            store=OwnerStoreInfo(
                id=store.id,
                name=store.name,
                email=store.email,
                address=store.address,
                description=store.description,
            ),
            stats=RatingStats(average_rating=aggregate.average_rating, total_ratings=aggregate.total_ratings),
            ratings=[RatingRow(**row) for row in rows],
        )
    )


@router.get("/store-owner/store", response_model=StoreResponse)
def get_store(request: Request, principal: Principal = Depends(_require_store_owner)) -> StoreResponse:
    rating_store: RatingStore = request.app.state.rating_store
    store = _owned_store(rating_store, principal)
    return StoreResponse(store=StoreRow(**rating_store.get_store_summary(store.id)))


@router.get("/store-owner/ratings", response_model=RatingListResponse)
def list_ratings(request: Request, principal: Principal = Depends(_require_store_owner)) -> RatingListResponse:
    """Ratings of the owner's store. Accepts the same filters and sort keys as the admin listing."""
    rating_store: RatingStore = request.app.state.rating_store
    store = _owned_store(rating_store, principal)
    filters, sort = listing_params(request)
    rows = rating_store.list_ratings(filters, sort, scope={"store_id": store.id})
    return RatingListResponse(count=len(rows), ratings=[RatingRow(**row) for row in rows])
