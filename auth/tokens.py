"""
auth/tokens.py -- JWT issue/verify and password hashing.

Security design decisions:
  JWT: python-jose with HS256. TokenService holds the signing secret and is
       constructed once in the API lifespan from Settings.secret_key -- there
       is no module-level key. Tokens carry sub (user id as a string, or the
       literal "admin" for the bootstrap administrator), role, iat and exp.
       verify() raises InvalidToken on any failure; the Auth Gate turns that
       into a generic 401 so the response never says why a token failed.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in authenticate_user() so response time
       does not reveal whether an email is registered.

  Bootstrap admin: credentials come from Settings (ADMIN_EMAIL /
       ADMIN_PASSWORD), compared with hmac.compare_digest. An empty
       ADMIN_PASSWORD disables admin login entirely.

Layer rule: no imports from api/, db/, or ratings/. Import from core/ is allowed.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import ADMIN_SUBJECT, ROLES
from core.errors import InvalidToken

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("storerater.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates at 72 bytes; the API layer caps passwords at 16
    characters, well below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage -- treat as a mismatch.
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("storerater_timing_dummy")


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenClaims:
    """Verified identity claims. subject_id is an int, or "admin"."""

    subject_id: int | str
    role: str

    @property
    def is_admin_sentinel(self) -> bool:
        return self.subject_id == ADMIN_SUBJECT and self.role == "admin"


class TokenService:
    """Issues and verifies signed, time-bound identity tokens.

    Pure: the only state is the read-only secret, so a single instance is
    shared by every request thread without locking.

    Usage:
        tokens = TokenService(settings.secret_key, settings.token_expire_seconds)
        token = tokens.issue(42, "normal_user")
        claims = tokens.verify(token)    # TokenClaims(subject_id=42, role="normal_user")
    """

    def __init__(self, secret_key: str, expire_seconds: int = 86400) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, subject_id: int | str, role: str) -> str:
        """Encode a signed JWT for subject_id with the configured expiry."""
        now = datetime.now(timezone.utc)
        payload = {
            # RFC 7519 requires sub to be a string.
            "sub": str(subject_id),
            "role": role,
            "iat": now,
            "exp": now + timedelta(seconds=self.expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a JWT.

        Raises InvalidToken when the signature does not match, the token is
        malformed or expired, or the claims are missing or out of range.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            raise InvalidToken(str(exc)) from exc

        subject = payload.get("sub")
        role = payload.get("role")
        if not isinstance(subject, str) or role not in ROLES:
            raise InvalidToken("missing or invalid claims")
        if subject == ADMIN_SUBJECT:
            return TokenClaims(subject_id=ADMIN_SUBJECT, role=role)
        if not subject.isdigit():
            raise InvalidToken("non-numeric subject")
        return TokenClaims(subject_id=int(subject), role=role)


# ---------------------------------------------------------------------------
# Login (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the email exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def authenticate_admin(settings: Settings, email: str, password: str) -> bool:
    """Return True if email/password match the configured bootstrap admin."""
    if not settings.admin_password:
        return False
    email_ok = hmac.compare_digest(email.strip().lower().encode(), settings.admin_email.strip().lower().encode())
    password_ok = hmac.compare_digest(password.encode(), settings.admin_password.encode())
    return email_ok and password_ok
