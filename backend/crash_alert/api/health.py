"""
Crash Alert - Health Check Endpoints

System health monitoring endpoints for load balancers, monitoring,
and operational visibility.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from crash_alert import __version__
from crash_alert.config import Settings
from crash_alert.core.exceptions import CrashAlertError
from crash_alert.core.pipeline import IngestionPipeline

router = APIRouter(prefix="/api/system", tags=["system"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/health")
async def health_check(
    pipeline: IngestionPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Overall system health check.

    Returns:
        - status: "healthy" or "degraded"
        - checks: Individual component statuses
        - timestamp: Current server time

    A facility repository that cannot be counted marks the service degraded;
    ingestion still works for the remaining categories.
    """
    checks = {}

    for category, repository in pipeline.repositories.items():
        try:
            checks[f"facilities.{category.value}"] = {
                "status": "healthy",
                "count": await repository.count(),
            }
        except CrashAlertError as e:
            checks[f"facilities.{category.value}"] = {
                "status": "unavailable",
                "message": e.message,
            }

    try:
        checks["incidents"] = {
            "status": "healthy",
            "backend": settings.storage_backend,
            "count": await pipeline.incident_logger.count(),
        }
    except CrashAlertError as e:
        checks["incidents"] = {
            "status": "unavailable",
            "backend": settings.storage_backend,
            "message": e.message,
        }

    all_healthy = all(c.get("status") == "healthy" for c in checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "timestamp": _now(),
        "version": __version__,
        "environment": settings.app_env,
        "checks": checks,
    }


@router.get("/ready")
async def readiness_check(request: Request) -> dict:
    """
    Readiness probe for container orchestration.

    Ready once the lifespan has built the pipeline.
    """
    return {
        "ready": getattr(request.app.state, "pipeline", None) is not None,
        "timestamp": _now(),
    }


@router.get("/live")
async def liveness_check() -> dict:
    """Liveness probe for container orchestration."""
    return {
        "alive": True,
        "timestamp": _now(),
    }


@router.get("/config")
async def config_info(
    settings: Settings = Depends(get_settings),
) -> dict:
    """
    Non-sensitive configuration information.

    Excludes the database URL, which may carry credentials.
    """
    return {
        "environment": settings.app_env,
        "debug": settings.app_debug,
        "log_level": settings.app_log_level,
        "storage_backend": settings.storage_backend,
        "search": {
            "radius_meters": settings.search_radius,
            "repository_timeout_seconds": settings.repository_timeout_seconds,
        },
        "uploads": {
            "max_files": settings.upload_max_files,
            "max_bytes": settings.upload_max_bytes,
            "allowed_types": settings.allowed_upload_types,
        },
        "privacy": {
            "anonymize_logs": settings.anonymize_logs,
        },
        "timestamp": _now(),
    }
