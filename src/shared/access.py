"""Capability checks.

Every service that acts on behalf of a caller asks ``ensure_can(actor,
action, resource)`` before touching state. The rules live in one table here
instead of being scattered across services as ad-hoc role comparisons.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from shared.errors import ForbiddenError


class Role(Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"


class Action(Enum):
    VIEW_ORDER = "view_order"
    CANCEL_ORDER = "cancel_order"
    UPDATE_ORDER_STATUS = "update_order_status"
    UPDATE_ORDER_ITEM = "update_order_item"
    VIEW_VENDOR_ORDERS = "view_vendor_orders"
    VIEW_ALL_ORDERS = "view_all_orders"
    VIEW_PAYMENT = "view_payment"
    REFUND_PAYMENT = "refund_payment"
    MANAGE_CART = "manage_cart"
    MANAGE_CARDS = "manage_cards"
    RUN_MAINTENANCE = "run_maintenance"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, as asserted by the upstream gateway."""

    id: str
    role: Role = Role.CUSTOMER
    vendor_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def system(cls) -> "Actor":
        return cls(id="system", role=Role.ADMIN)


_OWNER_ONLY = {
    Action.CANCEL_ORDER,
    Action.VIEW_PAYMENT,
    Action.REFUND_PAYMENT,
    Action.MANAGE_CART,
    Action.MANAGE_CARDS,
}

_ADMIN_ONLY = {
    Action.UPDATE_ORDER_STATUS,
    Action.VIEW_ALL_ORDERS,
    Action.RUN_MAINTENANCE,
}


def _owns(actor: Actor, resource: Any) -> bool:
    return resource is not None and getattr(resource, "customer_id", None) == actor.id


def _vendor_of(actor: Actor, resource: Any) -> bool:
    if actor.vendor_id is None or resource is None:
        return False
    if getattr(resource, "vendor_id", None) == actor.vendor_id:
        return True
    # Orders expose the vendors of their lines.
    return actor.vendor_id in set(getattr(resource, "vendor_ids", ()) or ())


def can(actor: Actor, action: Action, resource: Any = None) -> bool:
    """Return whether ``actor`` may perform ``action`` on ``resource``."""
    if actor.is_admin:
        return True

    if action == Action.VIEW_ORDER:
        return _owns(actor, resource) or _vendor_of(actor, resource)
    if action in _OWNER_ONLY:
        return _owns(actor, resource)
    if action == Action.UPDATE_ORDER_ITEM:
        return _vendor_of(actor, resource)
    if action == Action.VIEW_VENDOR_ORDERS:
        if actor.vendor_id is None:
            return False
        return resource is None or _vendor_of(actor, resource)

    # UPDATE_ORDER_STATUS, VIEW_ALL_ORDERS, RUN_MAINTENANCE
    return False


def ensure_can(actor: Actor, action: Action, resource: Any = None) -> None:
    if not can(actor, action, resource):
        message = "Admin access required" if action in _ADMIN_ONLY else "Access denied"
        raise ForbiddenError(message, details={"action": action.value, "actor_id": actor.id})
