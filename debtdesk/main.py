"""Main FastAPI application for the DebtDesk case service."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, make_asgi_app

from . import __version__
from .api import actions, cases, chat, health, websocket
from .core.config import settings
from .core.logging import configure_logging
from .db import create_gateway
from .db.gateway import DataGateway
from .services.error_handling import DebtDeskError, ErrorSeverity, classify_error

configure_logging()

logger = structlog.get_logger()

# Metrics
request_count = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)
request_duration = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"]
)


def create_app(gateway: Optional[DataGateway] = None) -> FastAPI:
    """Build the application; pass a gateway to skip creating one at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the gateway on startup and release it on shutdown."""
        logger.info("Starting DebtDesk", version=__version__, backend=settings.gateway_backend)
        owned = gateway is None
        app.state.gateway = gateway if gateway is not None else await create_gateway()

        yield

        logger.info("Shutting down DebtDesk")
        if owned:
            await app.state.gateway.close()

    app = FastAPI(
        title="DebtDesk",
        description="Case management core for B2B debt collection",
        version=__version__,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=lifespan,
    )
    if gateway is not None:
        app.state.gateway = gateway

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DebtDeskError)
    async def debtdesk_exception_handler(request: Request, exc: DebtDeskError):
        """Map domain errors to their status code and a user-facing message."""
        info = classify_error(exc, {"path": request.url.path})
        log = logger.warning if info.severity in (ErrorSeverity.LOW, ErrorSeverity.MEDIUM) else logger.error
        log(
            "Request failed",
            error_type=info.error_type,
            category=info.category.value,
            message=info.message,
            **info.context,
        )
        return JSONResponse(status_code=info.status_code, content=info.to_response())

    # Custom exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    # Middleware for request logging and metrics
    @app.middleware("http")
    async def log_requests(request, call_next):
        """Log all requests and collect metrics."""
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration=duration,
        )

        request_count.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
        ).inc()
        request_duration.labels(
            method=request.method,
            endpoint=request.url.path,
        ).observe(duration)

        return response

    app.include_router(
        health.router,
        prefix=f"{settings.api_prefix}/health",
        tags=["health"],
    )
    app.include_router(cases.router, prefix=settings.api_prefix)
    app.include_router(actions.router, prefix=settings.api_prefix)
    app.include_router(chat.router, prefix=settings.api_prefix)
    app.include_router(websocket.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": f"{settings.api_prefix}/health",
        }

    # Mount Prometheus metrics endpoint
    if settings.enable_metrics:
        app.mount("/metrics", make_asgi_app())

    return app


app = create_app()


def run():
    """Run the application."""
    uvicorn.run(
        "debtdesk.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
