"""Pydantic request/response schemas for the Inventory API."""

from pydantic import BaseModel, ConfigDict, Field


class _FromRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class ProductVariantResponse(_FromRow):
    id: str
    name: str
    sku: str | None = None
    is_active: bool


class VendorVariantResponse(_FromRow):
    id: str
    product_variant_id: str
    price: float
    compare_at_price: float | None = None
    stock_quantity: int
    is_active: bool


class VendorProductResponse(_FromRow):
    id: str
    vendor_id: str
    vendor_name: str
    sku: str | None = None
    price: float
    compare_at_price: float | None = None
    stock_quantity: int
    is_published: bool
    is_active: bool
    variants: list[VendorVariantResponse] = []


class ProductResponse(_FromRow):
    id: str
    name: str
    slug: str
    description: str | None = None
    status: str
    is_active: bool
    image_url: str | None = None
    variants: list[ProductVariantResponse] = []
    vendor_products: list[VendorProductResponse] = []


class StockLineSchema(BaseModel):
    vendor_product_id: str
    vendor_variant_id: str | None = None
    quantity: int = Field(ge=1)


class StockCheckRequest(BaseModel):
    items: list[StockLineSchema] = Field(min_length=1)


class StockCheckResultResponse(_FromRow):
    vendor_product_id: str
    vendor_variant_id: str | None = None
    requested_quantity: int
    available_quantity: int
    is_available: bool


class StockCheckResponseSchema(_FromRow):
    success: bool
    all_available: bool
    results: list[StockCheckResultResponse] = []
    error: str | None = None


class ExpiredReservationsResponse(BaseModel):
    released: int
