"""FastAPI routes for the Payments domain — stored cards, payments and refunds."""

from fastapi import APIRouter, Depends

from payments.api.schemas import (
    AddCardRequest,
    CardResponse,
    ConfigureGatewayRequest,
    GatewayConfigResponse,
    PaymentResponse,
    RefundRequest,
)
from payments.gateway import FakeGateway
from shared.access import Action, Actor, ensure_can
from shared.errors import ForbiddenError, NotFoundError, ValidationError
from shared.http import current_actor, get_services

# ---------------------------------------------------------------------------
# Card Router
# ---------------------------------------------------------------------------
card_router = APIRouter(prefix="/payments/cards", tags=["payment cards"])


@card_router.get("", response_model=list[CardResponse])
async def list_cards(actor: Actor = Depends(current_actor), services=Depends(get_services)) -> list[CardResponse]:
    cards = await services.cards.list_cards(actor.id)
    return [CardResponse.model_validate(card) for card in cards]


@card_router.post("", status_code=201, response_model=CardResponse)
async def add_card(
    body: AddCardRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> CardResponse:
    card = await services.cards.add_card(actor, **body.model_dump())
    return CardResponse.model_validate(card)


@card_router.delete("/{card_id}", status_code=204)
async def remove_card(card_id: str, actor: Actor = Depends(current_actor), services=Depends(get_services)) -> None:
    await services.cards.remove_card(card_id, actor)


@card_router.put("/{card_id}/default", response_model=CardResponse)
async def set_default_card(
    card_id: str, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> CardResponse:
    card = await services.cards.set_default_card(card_id, actor)
    return CardResponse.model_validate(card)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.get("/orders/{order_id}", response_model=PaymentResponse)
async def get_order_payment(
    order_id: str, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> PaymentResponse:
    payment = await services.payments.get_payment_by_order(order_id)
    if payment is None:
        raise NotFoundError("Payment not found", details={"order_id": order_id})
    ensure_can(actor, Action.VIEW_PAYMENT, payment)
    return PaymentResponse.model_validate(payment)


@payment_router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: str, body: RefundRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> PaymentResponse:
    payment = await services.payments.process_refund(payment_id, body.amount, reason=body.reason, actor=actor)
    await services.orders.record_refund(payment)
    return PaymentResponse.model_validate(payment)


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest, services=Depends(get_services)) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only).

    Allows testers to switch the gateway between success, decline and outage
    without restarting the server.
    """
    if services.settings.is_production:
        raise ForbiddenError("Gateway configuration not available in production")

    gateway = services.gateway
    if not isinstance(gateway, FakeGateway):
        raise ValidationError("Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        unavailable=body.unavailable,
    )
    return GatewayConfigResponse(
        gateway="fake",
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        unavailable=gateway.unavailable,
    )
