"""
FastAPI application factory.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.container import TradingServices, build_services
from api.errors import register_exception_handlers
from api.routers import admin, webhook
from human_review.router import router as pending_signals_router

logger = logging.getLogger(__name__)


def create_app(services: Optional[TradingServices] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        services: Pre-wired services (tests); built from the
            environment when omitted
    """
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await services.start()
        try:
            yield
        finally:
            await services.stop()

    app = FastAPI(
        title="Signal Execution API",
        description="Receives trading alerts, gates them through risk checks and places orders.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(webhook.router)
    app.include_router(admin.router)
    app.include_router(pending_signals_router)

    @app.get("/")
    def root():
        return {"status": "ok", "message": "Signal execution API is running"}

    return app
