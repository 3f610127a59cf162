"""
db/schema.py -- SQLAlchemy Core schema and engine factory for StoreRater.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in auth/models.py
and ratings/models.py remain the authoritative domain representation. Swapping
SQLite for PostgreSQL or MySQL is a connection string change.

All three tables live in one MetaData because they reference each other:

  users    <-- stores.owner_id   (ON DELETE CASCADE)
  users    <-- ratings.user_id   (ON DELETE CASCADE)
  stores   <-- ratings.store_id  (ON DELETE CASCADE)

UNIQUE(user_id, store_id) on ratings is the storage-level guarantee that a
user has at most one rating per store. ratings/store.py relies on it as the
backstop when two submissions for the same pair race.

SQLite only enforces foreign keys (and therefore the cascades) when
PRAGMA foreign_keys=ON is issued on every new connection; _on_connect does
that alongside WAL mode.

Layer rule: db/ imports only stdlib + third-party libraries, plus core/.
"""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(60), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", String(255), nullable=False),  # bcrypt hash, never plaintext
    Column("address", String(400)),
    Column("role", String(20), nullable=False, server_default="normal_user", index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint("role IN ('admin', 'store_owner', 'normal_user')", name="ck_users_role"),
)

stores_table = Table(
    "stores",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), index=True),
    Column("description", Text),
    Column("address", String(400)),
    Column("owner_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

ratings_table = Table(
    "ratings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("store_id", Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("rating", Integer, nullable=False),
    Column("comment", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("user_id", "store_id", name="uq_rating_user_store"),
    CheckConstraint("rating >= 1 AND rating <= 5", name="ck_ratings_range"),
)


def _on_connect(dbapi_conn, connection_record) -> None:
    """Per-connection SQLite PRAGMAs.

    WAL lets readers proceed while a writer holds the lock. foreign_keys=ON
    turns on the ON DELETE CASCADE clauses above. Both must be set per
    connection because SQLite does not persist them.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(db_url: str) -> Engine:
    """Build an Engine for db_url with the SQLite connection hooks attached.

    Usage:
        engine = create_db_engine("sqlite:///storerater.db")
        init_schema(engine)
        ...
        engine.dispose()
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync handlers in a thread pool, so one pooled
        # connection may be used from several threads over its lifetime.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _on_connect)
    return engine


def init_schema(engine: Engine) -> None:
    """Create any missing tables. Idempotent -- safe to call on every startup."""
    metadata.create_all(engine)
