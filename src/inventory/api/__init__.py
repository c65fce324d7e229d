"""Inventory domain API package."""

from inventory.api.routes import inventory_router
from inventory.api.routes import maintenance_router as inventory_maintenance_router

__all__ = ["inventory_router", "inventory_maintenance_router"]
