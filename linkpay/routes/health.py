from __future__ import annotations

from datetime import datetime, timezone
import time
from typing import Optional, Tuple

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from linkpay.config import settings
from linkpay.jobs.scheduler import get_scheduler
from linkpay.services.database import async_session

router = APIRouter()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_database() -> Tuple[bool, Optional[float], Optional[str]]:
    start = time.perf_counter()
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        return True, (time.perf_counter() - start) * 1000, None
    except Exception as exc:  # pragma: no cover - exercised via integration
        return False, (time.perf_counter() - start) * 1000, str(exc)


def _latency(value: Optional[float]) -> Optional[float]:
    return round(value, 2) if value is not None else None


@router.get("/health/live")
async def liveness_check() -> dict:
    return {
        "status": "alive",
        "version": settings.api_version,
        "timestamp": utc_now_iso(),
    }


@router.get("/health/ready")
async def readiness_check():
    ok, latency_ms, _ = await check_database()
    payload = {
        "status": "ready" if ok else "not_ready",
        "version": settings.api_version,
        "timestamp": utc_now_iso(),
        "database": "ok" if ok else "error",
        "database_latency_ms": _latency(latency_ms),
    }
    if ok:
        return payload
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload)


@router.get("/health")
async def health_check():
    """Always 200; /health/ready is the strict database-aware check."""
    ok, latency_ms, error = await check_database()
    payload = {
        "status": "ok" if ok else "degraded",
        "version": settings.api_version,
        "timestamp": utc_now_iso(),
        "database": "ok" if ok else "unavailable",
        "database_latency_ms": _latency(latency_ms),
    }
    if not ok:
        payload["database_error"] = error
    return payload


@router.get("/health/detailed")
async def detailed_health():
    ok, latency_ms, error = await check_database()
    scheduler = get_scheduler()
    payload = {
        "status": "ok" if ok else "error",
        "version": settings.api_version,
        "timestamp": utc_now_iso(),
        "checks": {
            "database": {
                "status": "ok" if ok else "error",
                "latency_ms": _latency(latency_ms),
                "error": error,
            },
            "scheduler": {
                "running": scheduler.running,
                "jobs": scheduler.job_ids(),
            },
            "stripe": {"webhook_configured": bool(settings.stripe_webhook_secret)},
            "notifications": {"mode": "webhook" if settings.notification_webhook_url else "log"},
        },
    }
    if ok:
        return payload
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=payload)
