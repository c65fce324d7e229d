"""FastAPI dependencies shared by every router.

Authentication happens upstream; the gateway forwards the caller as
``X-User-Id``, ``X-User-Role`` and ``X-Vendor-Id`` headers.
"""

from fastapi import Header, Query, Request

from shared.access import Actor, Role
from shared.errors import ForbiddenError, ValidationError
from shared.pagination import MAX_PAGE_SIZE, PageRequest


def get_services(request: Request):
    return request.app.state.services


async def current_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str = Header(default=Role.CUSTOMER.value),
    x_vendor_id: str | None = Header(default=None),
) -> Actor:
    if not x_user_id:
        raise ForbiddenError("Authentication required", code="UNAUTHENTICATED")
    try:
        role = Role(x_user_role.lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown role: {x_user_role}") from exc
    return Actor(id=x_user_id, role=role, vendor_id=x_vendor_id)


async def page_request(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
) -> PageRequest:
    return PageRequest(page=page, limit=limit)
