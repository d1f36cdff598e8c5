# layer_receipts/routes/health.py
"""
Health check endpoints.
"""

import time

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from layer_receipts.infrastructure.observability.logging import log_health_check
from layer_receipts.services.redis_client import redis_client

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "layer-receipts"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check: the snapshot store and task queue both live in Redis.
    """
    checks = {}

    t0 = time.time()
    try:
        redis_ok = await redis_client.ping()
        checks["redis"] = {
            "ok": bool(redis_ok),
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
    except Exception as e:
        checks["redis"] = {"ok": False, "error": f"{type(e).__name__}: {e}"}

    log_health_check(
        "redis",
        checks["redis"]["ok"],
        latency_ms=checks["redis"].get("latency_ms"),
        error=checks["redis"].get("error"),
    )

    overall_ok = all(check["ok"] for check in checks.values())
    return JSONResponse(
        status_code=200 if overall_ok else 503,
        content={"overall_ok": overall_ok, "checks": checks},
    )
