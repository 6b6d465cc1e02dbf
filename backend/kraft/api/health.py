# backend/kraft/api/health.py
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from kraft.api.deps import DBSession, Drivers
from kraft.config import get_settings
from kraft.exceptions import ControlPlaneError
from kraft.services.deadline import run_bounded

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

HEALTH_CHECK_TIMEOUT = 10.0


@router.get("/health")
def health_check(db: DBSession, drivers: Drivers):
    checks = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {"status": "healthy"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = {"status": "unhealthy"}

    try:
        checks["drivers"] = run_bounded(drivers.health, HEALTH_CHECK_TIMEOUT, "health check")
    except ControlPlaneError as e:
        logger.error(f"Driver health check failed: {e.message}")
        checks["drivers"] = {}

    healthy = checks["database"]["status"] == "healthy" and bool(checks["drivers"]) and all(
        report.get("status") == "healthy" for report in checks["drivers"].values()
    )
    body = {
        "status": "ok" if healthy else "degraded",
        "app": get_settings().app_name,
        "checks": checks,
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)
