"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from payout_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from payout_engine.api.v1 import creators, payouts, webhooks
from payout_engine.infrastructure.clients.wise import WiseClient
from payout_engine.infrastructure.database.session import init_db
from payout_engine.infrastructure.observability.logging import setup_logging
from payout_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """One Wise client (and connection pool) per process"""
    if settings.database_create_tables:
        await init_db()
    app.state.wise_client = WiseClient()
    try:
        yield
    finally:
        await app.state.wise_client.aclose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Creator Payout Engine",
        description="Creator payouts through the Wise transfer API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name, "wise_environment": settings.wise_environment}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(payouts.router, prefix="/v1", tags=["payouts"])
    app.include_router(creators.router, prefix="/v1", tags=["creators"])
    app.include_router(webhooks.router, prefix="/v1", tags=["webhooks"])

    return app


app = create_app()
