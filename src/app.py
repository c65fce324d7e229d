"""Orderflow FastAPI application.

One web server for every bounded context. Services are built once per app
(``container.build_services``) and reached from routes through
``request.app.state.services``.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from container import Services, build_services
from identity.api import router as address_router
from inventory.api import inventory_maintenance_router, inventory_router
from ordering.api import cart_router, order_router
from payments.api import card_router, payment_router
from shared.errors import ShopError
from shared.utils.logging import configure_logging

logger = structlog.get_logger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """Build the application. Tests pass their own ``services``."""
    owns_services = services is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_services:
            await app.state.services.close()

    if owns_services:
        configure_logging()
        services = build_services()

    app = FastAPI(
        title="Orderflow API",
        description="Marketplace order placement — carts, checkout, payments and order management",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        """Bind the caller and path to every log line of the request."""
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            path=request.url.path,
            method=request.method,
            user_id=request.headers.get("x-user-id"),
        )
        return await call_next(request)

    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError) -> JSONResponse:
        """Map every expected failure to its HTTP status and a coded body."""
        if exc.http_status >= 500:
            logger.warning("Request failed on a dependency", code=exc.code, error=exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", error_type=type(exc).__name__)
        return JSONResponse(
            status_code=500,
            content={"code": "INTERNAL_ERROR", "message": "Internal server error", "details": {}},
        )

    # -----------------------------------------------------------------------
    # Routers
    # -----------------------------------------------------------------------
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(card_router)
    app.include_router(payment_router)
    app.include_router(inventory_router)
    app.include_router(inventory_maintenance_router)
    app.include_router(address_router)

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------
    @app.get("/health")
    async def health():
        return JSONResponse(
            content={
                "status": "ok",
                "environment": app.state.services.settings.env,
                "payment_gateway": app.state.services.settings.payment_gateway,
            }
        )

    return app


app = create_app()
