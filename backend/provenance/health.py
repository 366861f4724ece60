"""Health check endpoints with dependency checking.

Provides health checks for:
- Database connectivity
- Attestation network configuration and reported health
- Background dispatcher load
- Application status
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text

from provenance.config import Settings
from provenance.container import AppContainer
from provenance.dependencies import get_container, get_settings
from provenance.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)

SERVICE_NAME = "provenance-verifier"
VERSION = "1.0.0"


def check_database(container: AppContainer) -> Dict[str, Any]:
    """Check database connectivity with a throwaway session.

    Returns:
        Dict with status and optional error message.
    """
    try:
        db = container.session_factory()()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        return {"healthy": True, "message": "Database connected"}
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))
        return {"healthy": False, "message": f"Database error: {str(e)}"}


def check_attestation_network(container: AppContainer, settings: Settings) -> Dict[str, Any]:
    """Check the attestation network is configured and reports itself healthy."""
    if not settings.attestation_api_url:
        return {"healthy": False, "message": "Attestation API URL not configured"}

    stats = container.attestation_client().network_stats()
    if stats.network_health == "unknown":
        logger.warning("attestation_health_check_failed", url=settings.attestation_api_url)
        return {"healthy": False, "message": "Attestation network stats unavailable"}
    return {
        "healthy": stats.network_health != "down",
        "message": f"Attestation network {stats.network_health}",
        "total_attestations": stats.total_attestations,
    }


def check_llm_api(settings: Settings) -> Dict[str, Any]:
    """Check Claude API configuration.

    No API call is made, only the key is checked.
    """
    if not settings.anthropic_api_key:
        return {"healthy": False, "message": "Anthropic API key not configured"}
    return {"healthy": True, "message": "Claude API key configured"}


def check_dispatcher(container: AppContainer) -> Dict[str, Any]:
    dispatcher = container.dispatcher()
    return {
        "healthy": True,
        "inflight": dispatcher.inflight,
        "failed_tasks": dispatcher.failed_tasks,
    }


@router.get("/health")
def health_check() -> Dict[str, Any]:
    """Basic health check - just app status."""
    return {"status": "healthy", "service": SERVICE_NAME, "version": VERSION}


@router.get("/health/detailed")
def detailed_health_check(
    container: AppContainer = Depends(get_container),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    """Detailed health check with dependency status.

    Checks:
    - Database connectivity
    - Attestation network health
    - Claude API configuration (generation only)
    - Background dispatcher load

    Claude is optional: a missing key does not degrade the service.
    """
    checks = {
        "database": check_database(container),
        "attestation_network": check_attestation_network(container, settings),
        "claude_api": check_llm_api(settings),
        "background": check_dispatcher(container),
    }

    required = ("database", "attestation_network", "background")
    all_healthy = all(checks[name]["healthy"] for name in required)
    overall_status = "healthy" if all_healthy else "degraded"

    logger.info(
        "health_check_performed",
        status=overall_status,
        database=checks["database"]["healthy"],
        attestation_network=checks["attestation_network"]["healthy"],
        claude_api=checks["claude_api"]["healthy"],
    )

    return {
        "status": overall_status,
        "service": SERVICE_NAME,
        "version": VERSION,
        "checks": checks,
    }


@router.get("/health/ready")
def readiness_check(container: AppContainer = Depends(get_container)) -> Dict[str, Any]:
    """Kubernetes-style readiness probe.

    Returns 200 if app can serve traffic, 503 otherwise.
    """
    if not check_database(container)["healthy"]:
        raise HTTPException(status_code=503, detail={"ready": False, "reason": "Database unavailable"})
    return {"ready": True}


@router.get("/health/live")
def liveness_check() -> Dict[str, Any]:
    """Kubernetes-style liveness probe."""
    return {"alive": True}
