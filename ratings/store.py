"""
ratings/store.py -- Rating Engine and store persistence.

Uses SQLAlchemy Core over the shared schema in db/schema.py. The engine is
injected and shared with auth.store.UserStore.

Pattern: Repository + Data Mapper. RatingStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Rating lifecycle per (user, store) pair:

    Unrated --submit--> Rated --submit--> Rated   (update in place)
    Rated   --delete--> Unrated

submit_rating() checks for an existing row and inserts or updates inside one
transaction. Two concurrent first submissions can both see "no row"; the
loser's INSERT then hits UNIQUE(user_id, store_id) and is retried once as an
UPDATE. Only if that update finds nothing (the row vanished again) does the
caller see Conflict. The constraint, not the pre-check, is what guarantees a
single row.

Aggregates (average, count) are computed on every read and never cached.
A read racing a submission may be one rating stale; that is accepted.

Layer rule: no imports from api/. May import auth.models, core/, db/.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_STORE_OWNER, User
from core.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthenticated
from db.query import SortSpec, build_query
from db.schema import ratings_table as _ratings
from db.schema import stores_table as _stores
from db.schema import users_table as _users
from ratings.models import Rating, RatingAggregate, Store

logger = logging.getLogger("storerater.ratings")

MIN_RATING = 1
MAX_RATING = 5


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_rating_value(value: object) -> int:
    """Return value if it is an integer in [1, 5], else raise InvalidInput.

    bool is rejected even though it subclasses int.
    """
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_RATING <= value <= MAX_RATING:
        raise InvalidInput(
            "Invalid rating",
            errors=[{"field": "rating", "message": "Rating must be a whole number between 1 and 5"}],
        )
    return value


def _clean_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    comment = comment.strip()
    return comment or None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RatingStore:
    """Repository for stores and ratings.

    Usage:
        ratings = RatingStore(engine)
        store_id, owner_id = ratings.create_store_with_owner(store, owner)
        record, created = ratings.submit_rating(user_id, store_id, 4, "ok")
        ratings.aggregate_for_store(store_id)   # RatingAggregate(4.0, 1)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def create_store_with_owner(self, store: Store, owner: User) -> tuple[int, int]:
        """Create a store_owner account and its store in one transaction.

        The owner's role is forced to store_owner regardless of owner.role.
        Returns (store_id, owner_id). Raises sqlalchemy.exc.IntegrityError if
        the owner email is taken; nothing is written in that case.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            owner_id = conn.execute(
                _users.insert().values(
                    name=owner.name,
                    email=owner.email.strip().lower(),
                    password=owner.hashed_password,
                    address=owner.address,
                    role=ROLE_STORE_OWNER,
                    created_at=now,
                    updated_at=now,
                )
            ).inserted_primary_key[0]
            store_id = conn.execute(
                _stores.insert().values(
                    name=store.name,
                    email=store.email,
                    description=store.description,
                    address=store.address,
                    owner_id=owner_id,
                    created_at=now,
                    updated_at=now,
                )
            ).inserted_primary_key[0]
        logger.info("Created store %s with owner %s", store_id, owner_id)
        return store_id, owner_id

    def get_store(self, store_id: int) -> Optional[Store]:
        """Fetch a single store by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_stores.select().where(_stores.c.id == store_id)).fetchone()
        return _row_to_store(row) if row is not None else None

    def get_store_by_owner(self, owner_id: int) -> Optional[Store]:
        """Return the store owned by owner_id, or None for an owner without a store."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _stores.select().where(_stores.c.owner_id == owner_id).order_by(_stores.c.id).limit(1)
            ).fetchone()
        return _row_to_store(row) if row is not None else None

    def get_store_summary(self, store_id: int) -> Optional[dict]:
        """Return one store row with owner and aggregate columns, or None."""
        rows = self.list_stores(scope={"id": store_id})
        return rows[0] if rows else None

    def list_stores(
        self,
        filters: Optional[Mapping[str, object]] = None,
        sort: Optional[SortSpec] = None,
        viewer_id: Optional[int] = None,
        scope: Optional[Mapping[str, object]] = None,
    ) -> list[dict]:
        """Return stores with owner_name, owner_email, average_rating, total_ratings.

        With viewer_id, each row also carries that user's own user_rating,
        user_comment and user_rating_id (None when they have not rated it).
        """
        query = build_query("stores", filters, sort, scope=scope, viewer_id=viewer_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query.statement).mappings().all()
        return [_with_float_average(dict(r)) for r in rows]

    def count_stores(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_stores)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def submit_rating(
        self,
        user_id: int,
        store_id: int,
        rating: int,
        comment: Optional[str] = None,
    ) -> tuple[Rating, bool]:
        """Create or update user_id's rating of store_id.

        Returns (rating_record, created) where created is True only for the
        Unrated -> Rated transition.

        Raises:
            InvalidInput: rating is not an integer 1-5.
            NotFound:     the store does not exist, or was deleted mid-write.
            Unauthenticated: the rater was deleted mid-write.
            Conflict:     the uniqueness retry could not find a row to update
                          while both the rater and the store still exist.
        """
        rating = validate_rating_value(rating)
        comment = _clean_comment(comment)
        if self.get_store(store_id) is None:
            raise NotFound("Store not found")

        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                existing_id = self._find_rating_id(conn, user_id, store_id)
                if existing_id is None:
                    conn.execute(
                        _ratings.insert().values(
                            store_id=store_id,
                            user_id=user_id,
                            rating=rating,
                            comment=comment,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    created = True
                else:
                    conn.execute(
                        _ratings.update()
                        .where(_ratings.c.id == existing_id)
                        .values(rating=rating, comment=comment, updated_at=now)
                    )
                    created = False
        except IntegrityError:
            logger.info("Rating insert for user %s store %s lost a race; retrying as update", user_id, store_id)
            with self.engine.begin() as conn:
                result = conn.execute(
                    _ratings.update()
                    .where((_ratings.c.user_id == user_id) & (_ratings.c.store_id == store_id))
                    .values(rating=rating, comment=comment, updated_at=now)
                )
            if result.rowcount == 0:
                self._raise_for_vanished_parent(user_id, store_id)
                raise Conflict() from None
            created = False

        record = self.get_rating_for_pair(user_id, store_id)
        if record is None:
            # Deleted between our write and this read.
            raise Conflict()
        return record, created

    def _raise_for_vanished_parent(self, user_id: int, store_id: int) -> None:
        """Explain an IntegrityError that was not a (user_id, store_id) collision.

        A foreign-key violation means the rater or the store was deleted after
        the request was authenticated. Returns normally when both still exist.
        """
        with self.engine.connect() as conn:
            user_exists = conn.execute(select(_users.c.id).where(_users.c.id == user_id)).first() is not None
            store_exists = conn.execute(select(_stores.c.id).where(_stores.c.id == store_id)).first() is not None
        if not user_exists:
            logger.info("Rating by user %s rejected: user no longer exists", user_id)
            raise Unauthenticated("Not authorized to access this route")
        if not store_exists:
            raise NotFound("Store not found")

    def _find_rating_id(self, conn: Connection, user_id: int, store_id: int) -> Optional[int]:
        row = conn.execute(
            select(_ratings.c.id).where((_ratings.c.user_id == user_id) & (_ratings.c.store_id == store_id))
        ).first()
        return row.id if row is not None else None

    def get_rating(self, rating_id: int) -> Optional[Rating]:
        with self.engine.connect() as conn:
            row = conn.execute(_ratings.select().where(_ratings.c.id == rating_id)).fetchone()
        return _row_to_rating(row) if row is not None else None

    def get_rating_for_pair(self, user_id: int, store_id: int) -> Optional[Rating]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _ratings.select().where((_ratings.c.user_id == user_id) & (_ratings.c.store_id == store_id))
            ).fetchone()
        return _row_to_rating(row) if row is not None else None

    def delete_rating(self, rating_id: int, requesting_user_id: int) -> None:
        """Delete a rating on behalf of its author.

        Raises NotFound if the rating does not exist, Forbidden if it belongs
        to someone else. The ownership check and delete share a transaction.
        """
        with self.engine.begin() as conn:
            row = conn.execute(select(_ratings.c.user_id).where(_ratings.c.id == rating_id)).first()
            if row is None:
                raise NotFound("Rating not found")
            if row.user_id != requesting_user_id:
                raise Forbidden("Not authorized to delete this rating")
            conn.execute(
                _ratings.delete().where((_ratings.c.id == rating_id) & (_ratings.c.user_id == requesting_user_id))
            )
        logger.info("User %s deleted rating %s", requesting_user_id, rating_id)

    def aggregate_for_store(self, store_id: int) -> RatingAggregate:
        """Return the rounded average and count of a store's ratings.

        Zero ratings yields RatingAggregate(None, 0).
        """
        stmt = select(
            func.avg(_ratings.c.rating).label("average"),
            func.count(_ratings.c.id).label("total"),
        ).where(_ratings.c.store_id == store_id)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).one()
        total = row.total or 0
        if total == 0 or row.average is None:
            return RatingAggregate(average_rating=None, total_ratings=0)
        return RatingAggregate(average_rating=round(float(row.average), 2), total_ratings=total)

    def list_ratings(
        self,
        filters: Optional[Mapping[str, object]] = None,
        sort: Optional[SortSpec] = None,
        scope: Optional[Mapping[str, object]] = None,
    ) -> list[dict]:
        """Return ratings joined with rater and store names.

        scope narrows the listing server-side, e.g. {"store_id": 4} for an
        owner's dashboard or {"user_id": 9} for "my ratings".
        """
        query = build_query("ratings", filters, sort, scope=scope)
        with self.engine.connect() as conn:
            rows = conn.execute(query.statement).mappings().all()
        return [dict(r) for r in rows]

    def count_ratings(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_ratings)).scalar()
        return result or 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _with_float_average(row: dict) -> dict:
    # Some backends return Decimal for ROUND(AVG(...)).
    if row.get("average_rating") is not None:
        row["average_rating"] = float(row["average_rating"])
    return row


def _row_to_store(row) -> Store:
    return Store(
        id=row.id,
        name=row.name,
        email=row.email,
        description=row.description,
        address=row.address,
        owner_id=row.owner_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_rating(row) -> Rating:
    return Rating(
        id=row.id,
        store_id=row.store_id,
        user_id=row.user_id,
        rating=row.rating,
        comment=row.comment,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
