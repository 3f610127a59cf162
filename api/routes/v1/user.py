"""
api/routes/v1/user.py -- Normal user endpoints: browse stores and rate them.

Routes:
  GET    /api/user/stores                  -- stores + aggregates + caller's own rating
  POST   /api/user/stores/{store_id}/rate  -- create (201) or update (200) a rating
  GET    /api/user/my-ratings              -- caller's ratings with store context
  DELETE /api/user/ratings/{rating_id}     -- delete one of the caller's ratings

Every route requires role normal_user. Admins and store owners cannot rate.

IDOR guard: the caller's id always comes from the Principal, never from the
request. delete_rating() checks ownership inside its transaction.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    MessageResponse,
    RatingListResponse,
    RatingRecord,
    RatingRow,
    RatingSubmit,
    RatingSubmitResponse,
    StoreListResponse,
    StoreRow,
)
from api.routes.common import listing_params
from auth.dependencies import NORMAL_USER_ONLY, require_roles
from auth.models import Principal
from ratings.store import RatingStore

# Auth policy: every route requires role normal_user (router-level dependency).
_require_normal_user = require_roles(NORMAL_USER_ONLY)
router = APIRouter(dependencies=[Depends(_require_normal_user)])


@router.get("/user/stores", response_model=StoreListResponse)
def list_stores(request: Request, principal: Principal = Depends(_require_normal_user)) -> StoreListResponse:
    """List all stores. Each row carries user_rating/user_comment for the caller."""
    rating_store: RatingStore = request.app.state.rating_store
    filters, sort = listing_params(request)
    rows = rating_store.list_stores(filters, sort, viewer_id=principal.id)
    return StoreListResponse(count=len(rows), stores=[StoreRow(**row) for row in rows])


@router.post("/user/stores/{store_id}/rate", response_model=RatingSubmitResponse)
def rate_store(
    request: Request,
    store_id: int,
    body: RatingSubmit,
    principal: Principal = Depends(_require_normal_user),
) -> JSONResponse:
    """Submit the caller's rating for a store.

    The first submission creates the rating (201). Any later submission
    overwrites it in place (200); there is never more than one per store.
    """
    rating_store: RatingStore = request.app.state.rating_store
    record, created = rating_store.submit_rating(principal.id, store_id, body.rating, body.comment)
    body_out = RatingSubmitResponse(
        message="Rating submitted successfully" if created else "Rating updated successfully",
        created=created,
        rating=RatingRecord(
            id=record.id,
            store_id=record.store_id,
            user_id=record.user_id,
            rating=record.rating,
            comment=record.comment,
            created_at=record.created_at,
            updated_at=record.updated_at,
        ),
    )
    return JSONResponse(status_code=201 if created else 200, content=body_out.model_dump())


@router.get("/user/my-ratings", response_model=RatingListResponse)
def my_ratings(request: Request, principal: Principal = Depends(_require_normal_user)) -> RatingListResponse:
    """List the caller's ratings with store name, email and address."""
    rating_store: RatingStore = request.app.state.rating_store
    filters, sort = listing_params(request)
    rows = rating_store.list_ratings(filters, sort, scope={"user_id": principal.id})
    return RatingListResponse(count=len(rows), ratings=[RatingRow(**row) for row in rows])


@router.delete("/user/ratings/{rating_id}", response_model=MessageResponse)
def delete_rating(
    request: Request,
    rating_id: int,
    principal: Principal = Depends(_require_normal_user),
) -> MessageResponse:
    """Delete one of the caller's ratings. Someone else's rating -> 403."""
    rating_store: RatingStore = request.app.state.rating_store
    rating_store.delete_rating(rating_id, principal.id)
    return MessageResponse(message="Rating deleted successfully")
