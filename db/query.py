"""
db/query.py -- Listing query builder for stores, users and ratings.

Turns untrusted listing input (query-string filters plus a sort field and
direction) into a SQLAlchemy Select whose text contains only allow-listed
column names and whose values are all bound parameters.

Rules:
  Filters   -- keys not in the entity's allow-list are dropped silently.
               String fields use case-insensitive substring match
               (icontains with autoescape, so % and _ in user input match
               literally). role is an exact match; rating is an exact
               integer match and raises InvalidInput if not 1-5.
  Sort      -- a field outside the entity's allow-list falls back to
               created_at DESC. Direction is normalized to ASC or DESC;
               anything else becomes DESC.
  Aggregates -- stores are joined to ratings and grouped, so sorting by
               average_rating orders by the aggregate alias rather than a
               raw column.
  Scope     -- server-side equality constraints (e.g. "ratings of store 4").
               Scope keys come from code, never from the client, so an
               unknown key is a programming error and raises ValueError.

Usage:
    query = build_query("stores", {"name": "caf"}, SortSpec("average_rating", "desc"))
    rows = conn.execute(query.statement).mappings().all()

Layer rule: db/ imports only stdlib + third-party libraries, plus core/.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import ColumnElement, Select, func, or_, select

from core.errors import InvalidInput
from db.schema import ratings_table, stores_table, users_table

DEFAULT_SORT_FIELD = "created_at"
DEFAULT_SORT_DIRECTION = "DESC"

_CONTAINS = "contains"
_EXACT = "exact"
_EXACT_RATING = "exact_rating"

_s = stores_table
_u = users_table
_r = ratings_table


# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SortSpec:
    """Requested ordering. field and direction are raw client input."""

    field: Optional[str] = DEFAULT_SORT_FIELD
    direction: Optional[str] = DEFAULT_SORT_DIRECTION


@dataclass(frozen=True)
class ParameterizedQuery:
    """A built listing query.

    statement        -- the Select to execute; every client value is a bind param
    applied_filters  -- the filters that survived the allow-list, normalized
    sort             -- the ordering actually applied after fallback
    """

    entity: str
    statement: Select
    applied_filters: dict[str, object] = field(default_factory=dict)
    sort: SortSpec = SortSpec()

    @property
    def sql(self) -> str:
        """Query text with placeholders, for logging and tests."""
        return str(self.statement.compile())

    @property
    def params(self) -> dict:
        return self.statement.compile().params


# ---------------------------------------------------------------------------
# Allow-lists
# ---------------------------------------------------------------------------

# filter key -> (match kind, columns). Several columns are OR-ed together.
_FILTERS: dict[str, dict[str, tuple[str, tuple[ColumnElement, ...]]]] = {
    "stores": {
        "name": (_CONTAINS, (_s.c.name,)),
        # Stores created without their own email are listed under the owner's.
        "email": (_CONTAINS, (_s.c.email, _u.c.email)),
        "address": (_CONTAINS, (_s.c.address,)),
    },
    "users": {
        "name": (_CONTAINS, (_u.c.name,)),
        "email": (_CONTAINS, (_u.c.email,)),
        "address": (_CONTAINS, (_u.c.address,)),
        "role": (_EXACT, (_u.c.role,)),
    },
    "ratings": {
        "comment": (_CONTAINS, (_r.c.comment,)),
        "rating": (_EXACT_RATING, (_r.c.rating,)),
        "store_name": (_CONTAINS, (_s.c.name,)),
        "user_name": (_CONTAINS, (_u.c.name,)),
        "user_email": (_CONTAINS, (_u.c.email,)),
    },
}

_SCOPES: dict[str, dict[str, ColumnElement]] = {
    "stores": {"id": _s.c.id, "owner_id": _s.c.owner_id},
    "users": {"id": _u.c.id, "role": _u.c.role},
    "ratings": {"store_id": _r.c.store_id, "user_id": _r.c.user_id},
}

ENTITIES = frozenset(_FILTERS)


# ---------------------------------------------------------------------------
# Base selects -- each returns (statement, sortable columns)
# ---------------------------------------------------------------------------


def _stores_base(viewer_id: Optional[int]) -> tuple[Select, dict[str, ColumnElement]]:
    average_rating = func.round(func.avg(_r.c.rating), 2).label("average_rating")
    total_ratings = func.count(_r.c.id).label("total_ratings")
    columns: list[ColumnElement] = [
        *_s.c,
        _u.c.name.label("owner_name"),
        _u.c.email.label("owner_email"),
        average_rating,
        total_ratings,
    ]
    group_by: list[ColumnElement] = [_s.c.id, _u.c.name, _u.c.email]
    joined = _s.outerjoin(_u, _s.c.owner_id == _u.c.id).outerjoin(_r, _r.c.store_id == _s.c.id)

    if viewer_id is not None:
        # The viewer's own rating, if any. UNIQUE(user_id, store_id) means this
        # join adds at most one row per store and does not skew the aggregates.
        mine = _r.alias("mine")
        joined = joined.outerjoin(mine, (mine.c.store_id == _s.c.id) & (mine.c.user_id == viewer_id))
        own = [
            mine.c.id.label("user_rating_id"),
            mine.c.rating.label("user_rating"),
            mine.c.comment.label("user_comment"),
        ]
        columns.extend(own)
        group_by.extend([mine.c.id, mine.c.rating, mine.c.comment])

    stmt = select(*columns).select_from(joined).group_by(*group_by)
    sortable = {
        "id": _s.c.id,
        "name": _s.c.name,
        "email": _s.c.email,
        "address": _s.c.address,
        "average_rating": average_rating,
        "total_ratings": total_ratings,
        "created_at": _s.c.created_at,
    }
    return stmt, sortable


def _users_base(viewer_id: Optional[int]) -> tuple[Select, dict[str, ColumnElement]]:
    # The password hash is never selected for listings.
    stmt = select(
        _u.c.id,
        _u.c.name,
        _u.c.email,
        _u.c.address,
        _u.c.role,
        _u.c.created_at,
        _u.c.updated_at,
    )
    sortable = {
        "id": _u.c.id,
        "name": _u.c.name,
        "email": _u.c.email,
        "address": _u.c.address,
        "role": _u.c.role,
        "created_at": _u.c.created_at,
    }
    return stmt, sortable


def _ratings_base(viewer_id: Optional[int]) -> tuple[Select, dict[str, ColumnElement]]:
    store_name = _s.c.name.label("store_name")
    user_name = _u.c.name.label("user_name")
    stmt = select(
        *_r.c,
        user_name,
        _u.c.email.label("user_email"),
        store_name,
        _s.c.email.label("store_email"),
        _s.c.address.label("store_address"),
    ).select_from(_r.outerjoin(_u, _r.c.user_id == _u.c.id).outerjoin(_s, _r.c.store_id == _s.c.id))
    sortable = {
        "id": _r.c.id,
        "rating": _r.c.rating,
        "store_name": store_name,
        "user_name": user_name,
        "created_at": _r.c.created_at,
        "updated_at": _r.c.updated_at,
    }
    return stmt, sortable


_BASES = {
    "stores": _stores_base,
    "users": _users_base,
    "ratings": _ratings_base,
}

_PRIMARY_KEYS = {
    "stores": _s.c.id,
    "users": _u.c.id,
    "ratings": _r.c.id,
}


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def normalize_direction(direction: Optional[str]) -> str:
    """Return "ASC" or "DESC". Anything unrecognized is DESC."""
    if isinstance(direction, str) and direction.strip().upper() == "ASC":
        return "ASC"
    return DEFAULT_SORT_DIRECTION


def _parse_rating_filter(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        parsed = 0
    if not 1 <= parsed <= 5:
        raise InvalidInput(
            "Invalid rating filter",
            errors=[{"field": "rating", "message": "Rating filter must be a whole number between 1 and 5"}],
        )
    return parsed


def build_query(
    entity: str,
    filters: Optional[Mapping[str, object]] = None,
    sort: Optional[SortSpec] = None,
    *,
    scope: Optional[Mapping[str, object]] = None,
    viewer_id: Optional[int] = None,
) -> ParameterizedQuery:
    """Build a filtered, sorted listing query for entity.

    Args:
        entity:    "stores", "users" or "ratings".
        filters:   Untrusted key/value pairs, typically the request query
                   string. Unknown keys and empty values are ignored.
        sort:      Untrusted sort request; see module docstring for fallback.
        scope:     Trusted equality constraints supplied by the route.
        viewer_id: stores only -- adds the viewer's own rating columns.

    Raises:
        InvalidInput: a rating filter that is not an integer 1-5.
        ValueError:   unknown entity or scope key (programming errors).
    """
    if entity not in _BASES:
        raise ValueError(f"Unknown listing entity: {entity!r}")

    stmt, sortable = _BASES[entity](viewer_id)

    for key, value in (scope or {}).items():
        column = _SCOPES[entity].get(key)
        if column is None:
            raise ValueError(f"Unknown scope key for {entity}: {key!r}")
        stmt = stmt.where(column == value)

    allowed = _FILTERS[entity]
    applied: dict[str, object] = {}
    for key, raw in (filters or {}).items():
        if key not in allowed or not isinstance(raw, str):
            continue
        value = raw.strip()
        if not value:
            continue
        kind, columns = allowed[key]
        if kind == _CONTAINS:
            clauses = [col.icontains(value, autoescape=True) for col in columns]
            stmt = stmt.where(or_(*clauses))
            applied[key] = value
        elif kind == _EXACT:
            stmt = stmt.where(columns[0] == value)
            applied[key] = value
        else:
            rating = _parse_rating_filter(value)
            stmt = stmt.where(columns[0] == rating)
            applied[key] = rating

    sort = sort or SortSpec()
    sort_field = sort.field if sort.field in sortable else DEFAULT_SORT_FIELD
    direction = normalize_direction(sort.direction) if sort.field in sortable else DEFAULT_SORT_DIRECTION

    order_col = sortable[sort_field]
    pk = _PRIMARY_KEYS[entity]
    order_by = [order_col.asc() if direction == "ASC" else order_col.desc()]
    if sort_field != "id":
        # Stable tie-break so equal timestamps or averages list deterministically.
        order_by.append(pk.asc() if direction == "ASC" else pk.desc())
    stmt = stmt.order_by(*order_by)

    return ParameterizedQuery(
        entity=entity,
        statement=stmt,
        applied_filters=applied,
        sort=SortSpec(field=sort_field, direction=direction),
    )
