"""Pydantic request/response schemas for the Payments API.

Card numbers and CVVs only ever appear in requests; responses carry the
brand and the last four digits.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AddCardRequest(BaseModel):
    card_holder_name: str = Field(min_length=1, max_length=255)
    card_number: str = Field(min_length=12, max_length=23)
    expiry_month: int = Field(ge=1, le=12)
    expiry_year: int = Field(ge=2000, le=2100)
    cvv: str = Field(min_length=3, max_length=4)
    is_default: bool = False
    nickname: str | None = None
    billing_address_line1: str | None = None
    billing_city: str | None = None
    billing_postal_code: str | None = None
    billing_country: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "card_holder_name": "Jane Doe",
                    "card_number": "4242 4242 4242 4242",
                    "expiry_month": 12,
                    "expiry_year": 2030,
                    "cvv": "123",
                }
            ]
        }
    }


class CardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    card_holder_name: str
    last_four: str
    brand: str
    expiry_month: int
    expiry_year: int
    is_default: bool
    nickname: str | None = None
    masked_number: str


class RefundRequest(BaseModel):
    amount: float = Field(gt=0)
    reason: str | None = Field(default=None, max_length=500)


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    customer_id: str
    payment_card_id: str | None = None
    amount: float
    currency: str
    status: str
    method: str
    transaction_id: str | None = None
    failure_reason: str | None = None
    failure_code: str | None = None
    refunded_amount: float
    refund_reason: str | None = None
    processed_at: datetime | None = None
    created_at: datetime


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Card declined"
    unavailable: bool = False


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    unavailable: bool
