"""
Main FastAPI application for the civic assistant.
"""

import asyncio
import time
from contextlib import asynccontextmanager, suppress
from datetime import timedelta

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response

from civic_assistant.api.routes import cases_router, messages_router
from civic_assistant.api.routes.messages import set_delivery_channel
from civic_assistant.config import get_settings
from civic_assistant.core.errors import StoreUnavailable
from civic_assistant.core.orchestrator import get_orchestrator, run_session_sweeper
from civic_assistant.services.delivery import create_delivery_channel
from civic_assistant.utils import setup_logging

logger = structlog.get_logger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "civic_assistant_requests_total",
    "Total requests",
    ["method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "civic_assistant_request_latency_seconds",
    "Request latency",
    ["method", "endpoint"]
)
STORE_FAILURES = Counter(
    "civic_assistant_store_failures_total",
    "Turns aborted because the session store was unavailable"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    settings = get_settings()
    setup_logging(settings)

    logger.info(
        "application_starting",
        environment=settings.environment,
        debug=settings.api.debug,
        redis_enabled=settings.redis.enabled,
        classifier=settings.classifier.provider,
    )

    orchestrator = get_orchestrator()
    channel = create_delivery_channel(settings)
    set_delivery_channel(channel)

    sweeper = asyncio.create_task(
        run_session_sweeper(orchestrator, timedelta(seconds=settings.conversation.sweep_interval_seconds))
    )

    yield

    # Cleanup
    logger.info("application_shutting_down")
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper

    await orchestrator.classifier.close()
    await orchestrator.data_service.close()
    await orchestrator.store.close()
    await channel.close()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Civic Assistant API",
        description="""
        Conversational assistant for city services.

        ## Features
        - Service request status lookups against the open-data portal
        - Guided issue reporting with validated slot collection
        - Escalation to city staff with a ticket number
        - Sessions with 30-minute inactivity expiry
        """,
        version="1.0.0",
        docs_url="/docs" if settings.api.debug else None,
        redoc_url="/redoc" if settings.api.debug else None,
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging and metrics middleware
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next):
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", str(time.time()))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                error=str(e)
            )
            raise

        latency = time.time() - start_time
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=request.url.path
        ).observe(latency)

        logger.info(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            latency_ms=int(latency * 1000)
        )

        response.headers["X-Request-ID"] = request_id
        return response

    # Exception handlers
    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
        STORE_FAILURES.inc()
        logger.error("session_store_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"detail": "Session store unavailable, please retry"},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            error=str(exc),
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    # Health check endpoints
    @app.get("/health")
    async def health_check():
        """Basic health check."""
        return {"status": "healthy"}

    @app.get("/health/ready")
    async def readiness_check():
        """Readiness check with session store validation."""
        checks = {
            "api": True,
            "session_store": await get_orchestrator().store.ping(),
        }

        all_healthy = all(checks.values())
        return JSONResponse(
            status_code=200 if all_healthy else 503,
            content={
                "status": "ready" if all_healthy else "not_ready",
                "checks": checks
            }
        )

    @app.get("/health/live")
    async def liveness_check():
        """Liveness check."""
        return {"status": "alive"}

    # Metrics endpoint
    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(
            content=generate_latest(),
            media_type="text/plain"
        )

    # Include routers
    app.include_router(messages_router, prefix="/api/v1")
    app.include_router(cases_router, prefix="/api/v1")

    return app


# Application instance
app = create_app()
