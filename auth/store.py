"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts (the
Credential Store).

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. Listing goes through db.query.build_query,
  which only ever puts allow-listed column names into query text.

  email is UNIQUE at the storage layer. create_user() lets IntegrityError
  propagate; callers translate it into a "user already exists" response.

The engine is injected (built once by db.schema.create_db_engine in the API
lifespan) and shared with ratings.store.RatingStore so both see the same
tables and foreign keys.

Layer rule: no imports from api/ or ratings/.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import User
from db.query import SortSpec, build_query
from db.schema import users_table as _users


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(engine)
        user_id = store.create_user(User(name=..., email=..., role="normal_user", hashed_password=...))
        user = store.get_by_email("someone@example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Emails are stored lowercased. Raises sqlalchemy.exc.IntegrityError if
        the email already exists.
        """
        now = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=user.email.strip().lower(),
                    password=user.hashed_password,
                    address=user.address,
                    role=user.role,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def update_password(self, user_id: int, hashed_password: str) -> bool:
        """Replace a user's password hash. Returns False if user_id was not found."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(password=hashed_password, updated_at=_now_iso())
            )
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user. Their store and every rating they wrote or received cascade.

        Returns True if deleted, False if not found.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(func.lower(_users.c.email) == email.strip().lower())).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, filters: Mapping[str, object] | None = None, sort: SortSpec | None = None) -> list[dict]:
        """Return users matching filters, without password hashes. Admin-only operation."""
        query = build_query("users", filters, sort)
        with self.engine.connect() as conn:
            rows = conn.execute(query.statement).mappings().all()
        return [dict(r) for r in rows]

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.password,
        address=row.address,
        role=row.role,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
