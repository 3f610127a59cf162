"""
ratings/models.py -- Domain dataclasses for stores and ratings.

These are pure data containers with zero logic. The upsert transition,
ownership checks and aggregation live in ratings/store.py.

id is None before the record is written to the database.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class Store:
    """A rateable store. owner_id references exactly one store_owner user."""

    name: str
    owner_id: Optional[int] = None
    email: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class Rating:
    """One user's rating of one store. (user_id, store_id) is unique."""

    store_id: int
    user_id: int
    rating: int  # 1-5
    comment: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class RatingAggregate:
    """Per-store statistics computed on read.

    average_rating is None when total_ratings is 0 so callers never divide
    by zero or mistake "no ratings" for an average of 0.
    """

    average_rating: Optional[float]
    total_ratings: int
