"""
Chat API - streamed LLM chat completions with chat persistence.

This service forwards chat turns to a hosted OpenAI-compatible model API
(Volcengine Ark by default), streams the model's tokens back to the
browser as plain text, and persists chats and messages.

Endpoints:
    Chat:
        - POST /api/chat - Stream a completion for the latest user message
        - DELETE /api/chat?id=... - Delete an owned chat
        - GET /api/chat/{chat_id}/messages - Chat history

    Health:
        - GET /health - Health check
        - GET /health/ready - Readiness (database reachable)
        - GET /health/live - Liveness

    Internal:
        - GET /internal/metrics - SLO counters
        - GET /internal/audit - Audit events

Last Grunted: 10/14/2026 03:10:00 PM UTC
"""
import sys
import time
import logging
from contextlib import asynccontextmanager
from typing import Callable

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from chat_api.config import get_settings
from chat_api.db.engine import init_db, close_db, check_db_health
from chat_api.routers import chat
from chat_api.services.errors import ChatAPIError, error_response, internal_error
from chat_api.services.http_client import create_http_client, close_http_client
from chat_api.services.observability import get_metric_snapshot, get_audit_events
from chat_api.services.provider import create_provider


# ============================================================================
# Logging Configuration
# ============================================================================

def configure_logging() -> None:
    """
    Configure structured logging with structlog.

    Sets up structlog with JSON output for production and pretty printing
    for development (when LOG_FORMAT=console).
    """
    settings = get_settings()
    log_level = settings.log_level.upper()

    # Configure stdlib logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level, logging.INFO),
    )

    # Shared processors
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "console":
        renderers = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderers = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]

    structlog.configure(
        processors=shared_processors + renderers,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Initialize logging before creating logger
configure_logging()
logger = structlog.get_logger("chat-api")


# ============================================================================
# Application Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager for startup and shutdown events.

    Startup:
        - Initializes database tables
        - Builds the pooled HTTP client and the provider client, once per process

    Shutdown:
        - Closes the provider and HTTP client connections
        - Closes database connections
    """
    settings = get_settings()
    logger.info("chat_api.startup")

    try:
        logger.info("chat_api.database.init")
        await init_db()
        logger.info("chat_api.database.ready")
    except Exception as e:
        logger.error("chat_api.database.error", error=str(e))
        raise

    http_client = create_http_client(settings)
    app.state.provider = create_provider(settings, http_client)

    logger.info("chat_api.ready")

    yield

    # Shutdown
    logger.info("chat_api.shutdown")

    await app.state.provider.aclose()
    await close_http_client(http_client)
    await close_db()

    logger.info("chat_api.shutdown.complete")


# ============================================================================
# Application Instance
# ============================================================================

app = FastAPI(
    title="Chat API",
    description="Streamed chat completions with chat persistence",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Response-Time"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ChatAPIError)
async def chat_api_exception_handler(request: Request, exc: ChatAPIError) -> PlainTextResponse:
    """Answer route errors with their status and plain-text message."""
    logger.warning(
        "chat_api.request_error",
        path=request.url.path,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
    )
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> PlainTextResponse:
    """Handle Pydantic validation errors with a 400 plain-text body."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        message = first_error.get("msg", "Validation error")
    else:
        message = "Request validation failed"

    logger.warning("chat_api.validation_error", path=request.url.path, message=message)

    return PlainTextResponse(message, status_code=400)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
    """
    Global exception handler for unhandled errors.

    Logs the full exception and returns a generic 500 without leaking
    internal details.
    """
    logger.exception(
        "chat_api.unhandled_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return internal_error()


# ============================================================================
# Request Logging Middleware
# ============================================================================

@app.middleware("http")
async def log_requests(request: Request, call_next: Callable):
    """Log request start and completion with duration."""
    request_id = request.headers.get("X-Request-ID", "-")
    start_time = time.perf_counter()

    # Bind request context for all logs in this request
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        path=request.url.path,
        method=request.method,
    )

    logger.info("chat_api.request.start")

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000

    logger.info(
        "chat_api.request.complete",
        status_code=response.status_code,
        duration_ms=round(duration_ms, 2),
    )

    # Streamed bodies are still running here; this is time to first byte
    response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

    return response


# ============================================================================
# Routers
# ============================================================================

app.include_router(chat.router, tags=["chat"])


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint for service monitoring."""
    return {
        "status": "ok",
        "service": "chat-api",
        "version": "0.1.0",
    }


@app.get("/health/ready")
async def readiness_check():
    """
    Readiness check endpoint.

    Performs a real database connectivity check (``SELECT 1``).

    Returns:
        dict: Readiness status with component health.
        JSONResponse 503 if the database is unreachable.
    """
    db_ok = await check_db_health()

    if not db_ok:
        logger.warning("readiness_check.database_unhealthy")
        return JSONResponse(
            status_code=503,
            content={
                "status": "not_ready",
                "checks": {"database": "unreachable"},
            },
        )

    return {"status": "ready", "checks": {"database": "ok"}}


@app.get("/health/live")
async def liveness_check():
    return {"status": "alive"}


@app.get("/internal/metrics")
async def internal_metrics() -> dict:
    """Internal SLO metrics snapshot."""
    return {"metrics": get_metric_snapshot()}


@app.get("/internal/audit")
async def internal_audit(limit: int = 100) -> dict:
    """Internal audit event buffer snapshot."""
    return {"events": get_audit_events(limit=limit)}
