"""
api/routes/common.py -- Helpers shared by the v1 route modules.

listing_params() turns a request's query string into the (filters, sort) pair
the Listing Query Builder expects. Every query parameter except sortBy and
sortOrder is passed through as a candidate filter; the builder drops the ones
that are not on its allow-list, so nothing here needs to know which fields a
listing supports.

Layer rule: may import from auth/, core/, db/, and api.models only.
"""

from __future__ import annotations

from fastapi import Request

from api.models import UserResponse
from auth.models import Principal, User, UserPrincipal
from db.query import SortSpec

_SORT_PARAMS = frozenset({"sortBy", "sortOrder"})


def listing_params(request: Request) -> tuple[dict[str, str], SortSpec]:
    """Split query parameters into filters and a SortSpec.

    Repeated keys keep their last value.
    """
    params = request.query_params
    filters = {key: value for key, value in params.items() if key not in _SORT_PARAMS}
    sort = SortSpec(field=params.get("sortBy"), direction=params.get("sortOrder"))
    return filters, sort


def user_response(subject: Principal | User) -> UserResponse:
    """Public view of a principal or stored user. Never includes the password hash."""
    if isinstance(subject, UserPrincipal):
        subject = subject.user
    return UserResponse(
        id=subject.id,
        name=subject.name,
        email=subject.email,
        role=subject.role,
        address=subject.address,
        created_at=getattr(subject, "created_at", None),
    )
