from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from scrapcore.core.config import settings
from scrapcore.core.db import Database
from scrapcore.core.logging import configure_logging
from scrapcore.integrations.notifications import NotificationDispatcher, build_dispatcher
from scrapcore.integrations.payment_gateway import PaymentGateway

# Routers
from scrapcore.routers.admin_coupons import router as admin_coupons_router
from scrapcore.routers.orders import router as orders_router
from scrapcore.routers.wallet import router as wallet_router

logger = logging.getLogger(__name__)


def create_app(
    *,
    database: Database | None = None,
    dispatcher: NotificationDispatcher | None = None,
    gateway: PaymentGateway | None = None,
    create_tables: bool = False,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL)

        db = database or Database(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        await db.open()
        if create_tables:
            await db.create_all()

        app.state.database = db
        app.state.dispatcher = dispatcher or build_dispatcher(
            settings.NOTIFY_WEBHOOK_URL,
            timeout=settings.NOTIFY_TIMEOUT,
        )
        app.state.gateway = gateway or PaymentGateway(
            settings.RAZORPAY_KEY_ID,
            settings.RAZORPAY_KEY_SECRET,
            base_url=settings.RAZORPAY_BASE_URL,
            currency=settings.CURRENCY,
            timeout=settings.RAZORPAY_TIMEOUT,
        )
        logger.info("scrapcore started")

        try:
            yield
        finally:
            await app.state.dispatcher.aclose()
            await app.state.gateway.aclose()
            await db.close()
            logger.info("scrapcore stopped")

    app = FastAPI(title="scrapcore", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Orders
    app.include_router(orders_router)

    # Wallet
    app.include_router(wallet_router)

    # Coupons
    app.include_router(admin_coupons_router)

    return app


app = create_app()
