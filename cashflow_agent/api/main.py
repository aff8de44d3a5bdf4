"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from cashflow_agent.api.middleware import RequestIDMiddleware, MetricsMiddleware
from cashflow_agent.api.v1 import suggestions, history
from cashflow_agent.infrastructure.observability.logging import setup_logging
from cashflow_agent.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Cash-Flow Suggestion Agent",
        description="Ranked, explainable cash-flow remediation suggestions with impact simulation",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(suggestions.router, prefix="/v1", tags=["suggestions"])
    app.include_router(history.router, prefix="/v1", tags=["history"])

    return app


app = create_app()
