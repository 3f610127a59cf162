"""
API request and response models for StoreRater REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
ratings/models.py, which own the internal domain representation. Route
handlers map between the two.

Envelope convention: every success body carries success=true, every failure
body is ErrorResponse (success=false, message, optional field errors).
"""

import re
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NAME_MIN_LENGTH = 20
NAME_MAX_LENGTH = 60
ADDRESS_MAX_LENGTH = 400
COMMENT_MAX_LENGTH = 500

_UPPERCASE_RE = re.compile(r"[A-Z]")
_SPECIAL_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


def _check_password_strength(value: str) -> str:
    """8-16 characters with at least one uppercase letter and one special character."""
    if not 8 <= len(value) <= 16:
        raise ValueError("Password must be 8-16 characters long")
    if not _UPPERCASE_RE.search(value):
        raise ValueError("Password must include at least one uppercase letter")
    if not _SPECIAL_RE.search(value):
        raise ValueError("Password must include at least one special character")
    return value


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    store_owner = "store_owner"
    normal_user = "normal_user"


# ---------------------------------------------------------------------------
# Request models -- auth
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup. Role is always normal_user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    email: EmailStr
    password: str
    address: Optional[str] = Field(default=None, max_length=ADDRESS_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login.

    email is not EmailStr here: a malformed address is just another failed
    login and gets the same 401 as a wrong password.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/auth/change-password (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(alias="currentPassword", min_length=1, max_length=255)
    new_password: str = Field(alias="newPassword")

    @field_validator("new_password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


# ---------------------------------------------------------------------------
# Request models -- admin
# ---------------------------------------------------------------------------


class AdminUserCreate(BaseModel):
    """Request body for POST /api/admin/users. Any role may be assigned."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    email: EmailStr
    password: str
    address: Optional[str] = Field(default=None, max_length=ADDRESS_MAX_LENGTH)
    role: RoleEnum

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return _check_password_strength(value)


class AdminStoreCreate(BaseModel):
    """Request body for POST /api/admin/stores.

    Creates the store and its store_owner account together. The temporary
    password only needs length 8+ so generated passwords are accepted; the
    owner is expected to change it.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    description: Optional[str] = Field(default=None, max_length=2000)
    address: Optional[str] = Field(default=None, max_length=ADDRESS_MAX_LENGTH)
    owner_name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    owner_email: EmailStr
    temporary_password: str = Field(min_length=8, max_length=64)


# ---------------------------------------------------------------------------
# Request models -- ratings
# ---------------------------------------------------------------------------


class RatingSubmit(BaseModel):
    """Request body for POST /api/user/stores/{store_id}/rate.

    StrictInt rejects "4" and 4.5 so the engine only ever sees real integers.
    """

    rating: StrictInt = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=COMMENT_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Failure envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    message: str
    errors: Optional[list[FieldError]] = None


class UserResponse(BaseModel):
    """Public view of an account. id is "admin" for the bootstrap administrator."""

    model_config = ConfigDict(frozen=True)

    id: Union[int, str]
    name: str
    email: str
    role: str
    address: Optional[str] = None
    created_at: Optional[str] = None


class AuthResponse(BaseModel):
    """Response for POST /signup and POST /login."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    token: str
    user: UserResponse


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: UserResponse


class StoreRow(BaseModel):
    """One store with its owner and on-read aggregates.

    user_rating / user_comment / user_rating_id are filled only on the normal
    user listing, where they describe the caller's own rating.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: Optional[str] = None
    description: Optional[str] = None
    address: Optional[str] = None
    owner_id: int
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None
    average_rating: Optional[float] = None
    total_ratings: int = 0
    created_at: str
    updated_at: str
    user_rating: Optional[int] = None
    user_comment: Optional[str] = None
    user_rating_id: Optional[int] = None


class RatingRow(BaseModel):
    """One rating with rater and store context from the listing join."""

    model_config = ConfigDict(frozen=True)

    id: int
    store_id: int
    user_id: int
    rating: int
    comment: Optional[str] = None
    created_at: str
    updated_at: str
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    store_name: Optional[str] = None
    store_email: Optional[str] = None
    store_address: Optional[str] = None


class UserRow(BaseModel):
    """One row in the admin user listing."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    address: Optional[str] = None
    role: str
    created_at: str
    updated_at: str


class RatingStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    average_rating: Optional[float]
    total_ratings: int


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    count: int
    users: list[UserRow]


class UserDetail(UserRow):
    """Admin user detail. Store owners also carry their store's aggregates."""

    store_id: Optional[int] = None
    store_name: Optional[str] = None
    average_rating: Optional[float] = None
    total_ratings: Optional[int] = None


class UserDetailResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    user: UserDetail


class StoreListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    count: int
    stores: list[StoreRow]


class StoreResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    store: StoreRow


class StoreCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    store: StoreRow
    owner: UserResponse


class UserCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    user: UserResponse


class RatingListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    count: int
    ratings: list[RatingRow]


class RatingRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    store_id: int
    user_id: int
    rating: int
    comment: Optional[str] = None
    created_at: str
    updated_at: str


class RatingSubmitResponse(BaseModel):
    """Response for POST /rate. created distinguishes insert (201) from update (200)."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str
    created: bool
    rating: RatingRecord


class AdminStats(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    total_users: int = Field(serialization_alias="totalUsers")
    total_stores: int = Field(serialization_alias="totalStores")
    total_ratings: int = Field(serialization_alias="totalRatings")


class AdminDashboardResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    stats: AdminStats


class OwnerStoreInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None


class OwnerDashboard(BaseModel):
    model_config = ConfigDict(frozen=True)

    store: OwnerStoreInfo
    stats: RatingStats
    ratings: list[RatingRow]


class OwnerDashboardResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    data: OwnerDashboard


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
