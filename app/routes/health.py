# app/routes/health.py
"""
Health check endpoints for the booking service.
"""

import time

from fastapi import APIRouter, Request

from app.config import settings
from app.services.redis_client import fast_redis

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness check - always returns 200 if the app is running."""
    return {"ok": True}


@router.get("/readyz")
async def readyz(request: Request):
    """Readiness check covering Redis and calendar configuration."""
    checks = {}

    t0 = time.time()
    try:
        redis_ok = await fast_redis.ping()
        checks["redis"] = {"ok": bool(redis_ok), "latency_ms": round((time.time() - t0) * 1000, 1)}
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}

    missing = settings.missing_calendar_settings()
    checks["calendar"] = {
        "ok": not missing and getattr(request.app.state, "booking_service", None) is not None,
        "missing_settings": missing,
    }

    overall_ok = all(check["ok"] for check in checks.values())
    return {"overall_ok": overall_ok, "checks": checks}
