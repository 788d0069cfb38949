"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from payflex_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from payflex_gateway.api.v1 import fraud, ledger, payments, ussd
from payflex_gateway.domain.ussd import SessionLocks
from payflex_gateway.infrastructure.observability.logging import setup_logging
from payflex_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="PayFlex Gateway",
        description="USSD menu, payment orchestration and fraud gating service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # One lock registry per process, shared by every USSD turn
    app.state.session_locks = SessionLocks()

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(ussd.router, prefix="/v1", tags=["ussd"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(fraud.router, prefix="/v1", tags=["fraud"])
    app.include_router(ledger.router, prefix="/v1", tags=["ledger"])

    return app


app = create_app()
