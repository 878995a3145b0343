# tokenline/app/api/endpoints/health.py
import shutil
import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import BASE_DIR, settings
from app.core.exceptions import UpstreamUnavailableError
from app.db.session import bounded, get_db

router = APIRouter()

REQUIRED_SETTINGS = ("DATABASE_URL", "SECRET_KEY", "JWT_ISSUER", "JWT_AUDIENCE")

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_database(db: AsyncSession) -> Dict[str, Any]:
    start = time.perf_counter()
    try:
        await bounded(db, db.execute(text("SELECT 1")), operation="health")
    except (UpstreamUnavailableError, SQLAlchemyError) as e:
        logger.error(f"Health check: database unreachable: {e!r}")
        return {"status": UNHEALTHY, "message": "Database connection failed"}
    return {
        "status": HEALTHY,
        "message": "Database connection successful",
        "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
    }


def check_application() -> Dict[str, Any]:
    """Required settings present (unhealthy otherwise) and disk headroom (degraded when low)."""
    details: Dict[str, Any] = {}
    result = HEALTHY

    missing = [name for name in REQUIRED_SETTINGS if not getattr(settings, name, None)]
    if missing:
        details["settings"] = [f"{name} is not set" for name in missing]
        result = UNHEALTHY

    try:
        usage = shutil.disk_usage(BASE_DIR)
    except OSError as e:
        logger.warning(f"Health check: disk usage unavailable: {e!r}")
        details["disk_usage"] = None
    else:
        usage_percent = round((usage.total - usage.free) / usage.total * 100, 2)
        details["disk_usage"] = {
            "usage_percent": usage_percent,
            "free_bytes": usage.free,
            "total_bytes": usage.total,
        }
        if usage_percent > settings.HEALTH_DISK_USAGE_THRESHOLD_PERCENT:
            details["disk_warning"] = "Disk usage is high"
            if result == HEALTHY:
                result = DEGRADED

    if result != HEALTHY:
        logger.warning(f"Health check: application {result}: {details}")
    return {
        "status": result,
        "message": "Application checks passed" if result == HEALTHY else "Some application checks failed",
        "details": details,
    }


@router.get("/ping")
async def ping() -> Any:
    return {"message": "pong", "timestamp": _timestamp()}


@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)) -> Any:
    checks = {
        "database": await check_database(db),
        "application": check_application(),
    }
    statuses = {check["status"] for check in checks.values()}
    if UNHEALTHY in statuses:
        overall = UNHEALTHY
    elif DEGRADED in statuses:
        overall = DEGRADED
    else:
        overall = HEALTHY

    return JSONResponse(
        # degraded still serves traffic
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE if overall == UNHEALTHY else status.HTTP_200_OK,
        content={
            "status": overall,
            "timestamp": _timestamp(),
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "checks": checks,
        },
    )
