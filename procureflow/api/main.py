"""FastAPI application for the ProcureFlow API.

Provides the main application instance with routers, middleware,
and exception handlers configured.
"""

import logging
import sys
import time as _time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response

from procureflow.config import load_settings

settings = load_settings()

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=settings.server.log_level,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("procureflow").setLevel(settings.server.log_level)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from procureflow import __version__
from procureflow.api.dependencies import USER_ID_HEADER
from procureflow.api.routes import agent, purchase_requests
from procureflow.db.connection import close_db, get_db_context, init_db
from procureflow.errors import DomainError, build_error_response
from procureflow.services.conversation_handler import build_dependencies
from procureflow.services.metrics import get_metrics, get_metrics_content_type

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

# Module-level state for health endpoint
_startup_time: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: create tables on startup, release the pool on shutdown."""
    global _startup_time

    # --- Startup ---
    _startup_time = _time.time()
    init_db()
    logger.info(
        "ProcureFlow API %s started (llm=%s, moderation=%s)",
        __version__,
        settings.llm.provider,
        settings.safety.moderation_enabled,
    )

    yield

    # --- Shutdown ---
    close_db()


app = FastAPI(
    title="ProcureFlow API",
    description="Conversational procurement: catalog search, carts and purchase requests",
    version=__version__,
    lifespan=lifespan,
)

# Shared across requests so the search cache survives between turns.
app.state.orchestrator_dependencies = build_dependencies(settings)

# CORS allowlist is settings-driven. If empty, CORS is disabled (same-origin only).
if settings.server.allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", USER_ID_HEADER],
        expose_headers=[CORRELATION_HEADER],
    )


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure with its correlation id and return the safe payload."""
    payload = build_error_response(exc)
    user_id = request.headers.get(USER_ID_HEADER, "-")
    if payload.status_code >= 500:
        logger.error(
            "Unhandled error on %s %s (user=%s, correlation_id=%s)",
            request.method,
            request.url.path,
            user_id,
            payload.correlation_id,
            exc_info=exc,
        )
    else:
        logger.warning(
            "%s on %s %s (user=%s, correlation_id=%s): %s",
            payload.error,
            request.method,
            request.url.path,
            user_id,
            payload.correlation_id,
            payload.message,
        )
    return JSONResponse(
        status_code=payload.status_code,
        content=payload.to_dict(),
        headers={CORRELATION_HEADER: payload.correlation_id},
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Handle DomainError exceptions with consistent format.

    Args:
        request: The incoming request.
        exc: The DomainError exception.

    Returns:
        JSONResponse with the registry code, sanitized message and
        correlation id.
    """
    return _error_response(request, exc)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a generic 500 payload. Details stay in the server log."""
    return _error_response(request, exc)


# Include routers
app.include_router(agent.router, prefix="/api/v1")
app.include_router(purchase_requests.router, prefix="/api/v1")


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint with basic process status.

    Returns:
        Dictionary with status, version and uptime.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0
    return {
        "status": "healthy",
        "version": __version__,
        "uptime_seconds": uptime,
    }


@app.get("/readyz")
def readiness_check():
    """Dependency-aware readiness check: the database must answer."""
    checks: dict[str, dict[str, Any]] = {}
    try:
        with get_db_context() as db:
            db.execute(text("SELECT 1"))
        checks["database"] = {"ok": True}
    except Exception as e:
        logger.warning("Readiness database check failed: %s", e)
        checks["database"] = {"ok": False, "error": type(e).__name__}

    ready = all(c["ok"] for c in checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )


@app.get("/metrics")
def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())
