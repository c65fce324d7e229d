"""FastAPI routes for the Inventory domain — product offers, stock and reservation upkeep."""

from fastapi import APIRouter, Depends

from inventory.api.schemas import (
    ExpiredReservationsResponse,
    ProductResponse,
    StockCheckRequest,
    StockCheckResponseSchema,
)
from inventory.stock.expiry import expire_stale_reservations
from shared.access import Action, Actor, ensure_can
from shared.contracts.inventory import StockLine
from shared.errors import NotFoundError
from shared.http import current_actor, get_services

# ---------------------------------------------------------------------------
# Inventory Router
# ---------------------------------------------------------------------------
inventory_router = APIRouter(prefix="/inventory", tags=["inventory"])


@inventory_router.get("/products/{slug}", response_model=ProductResponse)
async def get_product(slug: str, services=Depends(get_services)) -> ProductResponse:
    product = await services.inventory.get_product_by_slug(slug)
    if product is None:
        raise NotFoundError(f"Product not found: {slug}", code="PRODUCT_NOT_FOUND")
    return ProductResponse.model_validate(product)


@inventory_router.post("/stock/check", response_model=StockCheckResponseSchema)
async def check_stock(body: StockCheckRequest, services=Depends(get_services)) -> StockCheckResponseSchema:
    lines = [StockLine(line.vendor_product_id, line.quantity, line.vendor_variant_id) for line in body.items]
    result = await services.inventory.check_stock(lines)
    return StockCheckResponseSchema.model_validate(result)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/inventory/reservations", tags=["inventory maintenance"])


@maintenance_router.post("/expire", response_model=ExpiredReservationsResponse)
async def expire_reservations(
    actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> ExpiredReservationsResponse:
    """Release every reservation whose TTL has passed."""
    ensure_can(actor, Action.RUN_MAINTENANCE)
    return ExpiredReservationsResponse(released=await expire_stale_reservations(services.inventory))
