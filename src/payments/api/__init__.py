"""Payments domain API package."""

from payments.api.routes import card_router, payment_router

__all__ = ["card_router", "payment_router"]
