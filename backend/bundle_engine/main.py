"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from bundle_engine import models  # noqa: F401
from bundle_engine.config import settings
from bundle_engine.database import Base, async_session_maker, engine
from bundle_engine.exceptions import PhiPiiViolationError
from bundle_engine.repositories import (
    InMemoryEventSink,
    InMemoryExplanationLogSink,
    SqlEventSink,
    SqlExplanationLogSink,
)
from bundle_engine.routes import bundles

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Use database-backed audit sinks when a database is configured."""
    if settings.database_configured:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (OSError, SQLAlchemyError) as e:
            logger.warning("Audit database not available - using in-memory sinks: %s", e)
        else:
            app.state.event_sink = SqlEventSink(async_session_maker)
            app.state.explanation_log_sink = SqlExplanationLogSink(async_session_maker)
            logger.info("Audit tables ensured")
    else:
        logger.warning("DATABASE_URL not configured - audit events are kept in memory")

    logger.info("Explanation config: %s", settings.explanation_config_summary())

    yield  # Application runs here

    if settings.database_configured:
        await engine.dispose()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app = FastAPI(
    title="Care Bundle Engine",
    description="Care bundle recommendation engine for home and community care",
    version=settings.engine_version,
    lifespan=lifespan,
)

# Replaced in lifespan when a database is reachable
app.state.event_sink = InMemoryEventSink()
app.state.explanation_log_sink = InMemoryExplanationLogSink()

app.add_middleware(SecurityHeadersMiddleware)

_cors_origins = [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["X-API-Key", "Content-Type"],
)

app.include_router(bundles.router, prefix="/api")


@app.exception_handler(PhiPiiViolationError)
async def phi_pii_violation_handler(request: Request, exc: PhiPiiViolationError) -> JSONResponse:
    # Payload content is never echoed back
    logger.error("Explanation blocked by PHI/PII safety check on %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Explanation blocked by PHI/PII safety check"},
    )


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": "Care Bundle Engine API",
        "version": settings.engine_version,
        "docs": "/docs",
    }
