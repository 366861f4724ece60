"""FastAPI application entry point with structured logging and health checks."""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from provenance.api import attestations, challenges, generation, verifications
from provenance.container import AppContainer
from provenance.errors import (
    AttestationSubmissionFailed,
    AttestationTransient,
    AuthenticationFailed,
    IntegrityMismatch,
    InvalidStateTransition,
    NotFound,
    ProvenanceError,
    StoreConflict,
)
from provenance.health import router as health_router
from provenance.logging_config import get_logger, setup_logging

# Setup structured logging
setup_logging(
    json_logs=os.getenv("JSON_LOGS", "false").lower() == "true",
    log_level=os.getenv("LOG_LEVEL", "INFO"),
)
logger = get_logger(__name__)

VERSION = "1.0.0"
API_V1_PREFIX = "/api/v1"

# Most specific class first; NotChallengeable is an InvalidStateTransition
ERROR_STATUS_CODES = (
    (NotFound, 404),
    (AuthenticationFailed, 401),
    (IntegrityMismatch, 422),
    (InvalidStateTransition, 409),
    (StoreConflict, 409),
    (AttestationTransient, 503),
    (AttestationSubmissionFailed, 502),
)


def status_code_for(exc: ProvenanceError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def provenance_error_handler(request: Request, exc: ProvenanceError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle: initialize and drain container resources."""
    container: AppContainer = app.state.container
    logger.info("application_startup", version=VERSION)
    container.init_resources()
    logger.info("database_initialized")
    yield
    container.shutdown_resources()
    logger.info("application_shutdown")


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    """Build the FastAPI app around ``container`` (a fresh one by default)."""
    app = FastAPI(
        title="Provenance Verifier",
        description=(
            "Verifies claims that a piece of content was produced by a given AI "
            "model for a given prompt, through signatures, content hashes and "
            "an external attestation network."
        ),
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.container = container or AppContainer()

    allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )

    app.add_exception_handler(ProvenanceError, provenance_error_handler)

    # Health checks (no versioning)
    app.include_router(health_router, tags=["health"])

    app.include_router(verifications.router, prefix=f"{API_V1_PREFIX}/verifications", tags=["verifications"])
    app.include_router(
        challenges.verification_router, prefix=f"{API_V1_PREFIX}/verifications", tags=["challenges"]
    )
    app.include_router(challenges.router, prefix=f"{API_V1_PREFIX}/challenges", tags=["challenges"])
    app.include_router(attestations.router, prefix=f"{API_V1_PREFIX}/attestations", tags=["attestations"])
    app.include_router(generation.router, prefix=f"{API_V1_PREFIX}/generate", tags=["generation"])

    @app.get("/")
    def root():
        """Root endpoint - API information and available endpoints."""
        return {
            "service": "Provenance Verifier API",
            "version": VERSION,
            "status": "running",
            "docs": "/docs",
            "health": "/health",
            "health_detailed": "/health/detailed",
            "api_version": "v1",
            "endpoints": {
                "verifications": f"{API_V1_PREFIX}/verifications",
                "challenges": f"{API_V1_PREFIX}/challenges/{{id}}",
                "attestations": f"{API_V1_PREFIX}/attestations/callback",
                "generate": f"{API_V1_PREFIX}/generate",
            },
        }

    return app


app = create_app()
