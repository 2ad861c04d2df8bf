"""
Remisslink - entity resolution for Swedish consultation responses

FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from remisslink import __version__
from remisslink.config import settings
from remisslink.db.session import build_engine, build_session_factory, create_schema
from remisslink.errors import (
    ConfigurationError,
    EntityNotFoundError,
    InvalidTransitionError,
    MentionNotFoundError,
    PersistenceError,
    QueueUnavailableError,
    RuleNotFoundError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Body limits by path prefix, checked in order
BODY_LIMITS = (
    ("/api/v1/mentions", 20 * 1024 * 1024),  # Bulk ingestion
    ("/api/v1/rules", 64 * 1024),
)
DEFAULT_BODY_LIMIT = 5 * 1024 * 1024


def body_limit_for(path: str) -> int:
    for prefix, limit in BODY_LIMITS:
        if path.startswith(prefix):
            return limit
    return DEFAULT_BODY_LIMIT


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared Content-Length is over the path limit."""

    async def dispatch(self, request: Request, call_next) -> Response:
        limit = body_limit_for(request.url.path)
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            logger.warning(f"Rejected {request.url.path}: body of {declared} bytes over {limit}")
            return JSONResponse(
                status_code=413,
                content={
                    "error": "Request entity too large",
                    "message": f"Body limit for this endpoint is {limit // 1024}KB",
                    "limit_bytes": limit,
                },
            )
        return await call_next(request)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with X-Request-ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        started = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or f"rl_{uuid4().hex[:12]}"

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"[{request_id}] {elapsed * 1000:.1f}ms"
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the registry engine on startup and dispose of it on shutdown."""
    logger.info("Starting remisslink...")

    engine = build_engine(settings.database_url, echo=settings.debug)
    if settings.auto_create_schema:
        await create_schema(engine)
    app.state.db_session = build_session_factory(engine)

    logger.info("remisslink started")
    yield

    logger.info("Shutting down remisslink...")
    await engine.dispose()
    logger.info("remisslink shutdown complete")


app = FastAPI(
    title="Remisslink",
    description="Links organization names in consultation responses to canonical entities",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
)

app.add_middleware(BodySizeLimitMiddleware)
app.add_middleware(AccessLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID", "X-User-Id"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
    max_age=600,
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid parameters", "message": exc.message, "details": exc.details},
    )


@app.exception_handler(MentionNotFoundError)
@app.exception_handler(EntityNotFoundError)
@app.exception_handler(RuleNotFoundError)
async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Not found", "message": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def transition_error_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "error": "Invalid state transition",
            "message": str(exc),
            "mention_id": str(exc.mention_id),
            "current_state": exc.current,
            "requested_state": exc.requested,
        },
    )


@app.exception_handler(QueueUnavailableError)
async def queue_unavailable_handler(request: Request, exc: QueueUnavailableError) -> JSONResponse:
    """The UI must show a reload prompt, not an empty queue."""
    return JSONResponse(
        status_code=503,
        content={"error": "Review queue unavailable", "message": str(exc), "state": "reload_failed"},
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error(f"Registry error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"error": "Registry unavailable", "message": "The registry could not be reached."},
    )


@app.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Report whether the registry database answers."""
    database: dict[str, Any] = {"status": "healthy"}
    try:
        async with request.app.state.db_session() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError, AttributeError) as e:
        database = {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy" if database["status"] == "healthy" else "degraded",
        "checked_at": datetime.utcnow().isoformat(),
        "version": __version__,
        "services": {"database": database},
    }


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "name": "Remisslink",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything the error taxonomy does not cover. Details stay out of production responses."""
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")

    content = {"error": "Internal server error", "message": "An unexpected error occurred."}
    if not settings.is_production:
        content.update(message=str(exc), type=type(exc).__name__)
    return JSONResponse(status_code=500, content=content)


# Routers
from remisslink.api.routes import (  # noqa: E402
    linking_router,
    mentions_router,
    review_router,
    rules_router,
)

app.include_router(mentions_router, prefix="/api/v1/mentions", tags=["mentions"])
app.include_router(linking_router, prefix="/api/v1", tags=["linking"])
app.include_router(review_router, prefix="/api/v1", tags=["review"])
app.include_router(rules_router, prefix="/api/v1", tags=["rules"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
