"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these own the domain shape.

Principal is a tagged union resolved once per request by the Auth Gate:

  AdminPrincipal   -- the bootstrap administrator. Synthesized from token
                      claims {sub: "admin", role: "admin"}; there is no row
                      in the users table and the gate never queries for one.
  UserPrincipal    -- wraps a persisted User loaded from the Credential Store.

Both expose id, name, email and role so handlers can treat them uniformly;
code that needs a database id must check isinstance(principal, UserPrincipal).

Layer rule: no imports from api/, db/, or ratings/.
"""

from __future__ import annotations

from dataclasses import dataclass

ROLE_ADMIN = "admin"
ROLE_STORE_OWNER = "store_owner"
ROLE_NORMAL_USER = "normal_user"

ROLES: frozenset[str] = frozenset({ROLE_ADMIN, ROLE_STORE_OWNER, ROLE_NORMAL_USER})

# Token subject reserved for the bootstrap administrator.
ADMIN_SUBJECT = "admin"


@dataclass
class User:
    """A persisted account. hashed_password is a bcrypt hash, never plaintext."""

    name: str
    email: str
    role: str  # "admin" | "store_owner" | "normal_user"
    id: int | None = None
    hashed_password: str | None = None
    address: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class AdminPrincipal:
    name: str
    email: str
    id: str = ADMIN_SUBJECT
    role: str = ROLE_ADMIN
    address: str | None = None


@dataclass(frozen=True)
class UserPrincipal:
    user: User

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def name(self) -> str:
        return self.user.name

    @property
    def email(self) -> str:
        return self.user.email

    @property
    def role(self) -> str:
        return self.user.role

    @property
    def address(self) -> str | None:
        return self.user.address


Principal = AdminPrincipal | UserPrincipal
