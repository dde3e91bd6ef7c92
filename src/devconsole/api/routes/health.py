"""
Health API Routes
=================
Liveness for the dashboard and a deeper watcher probe that pings the
database and reports process resource usage.
"""

import logging
import os
import time
from datetime import datetime

import psutil
from fastapi import APIRouter
from fastapi.responses import JSONResponse

import devconsole.api.state as api_state
from devconsole.persistence import ping

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@router.get("/watcher/health")
async def watcher_health():
    """Returns 503 when the database does not answer."""
    start = time.perf_counter()
    try:
        db_ok = await ping()
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        db_ok = False
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    memory = psutil.Process(os.getpid()).memory_info()
    body = {
        "status": "healthy" if db_ok else "unhealthy",
        "timestamp": datetime.now().isoformat(),
        "uptime": round(time.time() - api_state.start_time, 1),
        "memory": {
            "rss_mb": round(memory.rss / (1024 * 1024), 1),
            "vms_mb": round(memory.vms / (1024 * 1024), 1),
        },
        "database": {"connected": db_ok, "latency_ms": latency_ms},
        "websocket_clients": len(api_state.manager.active_connections),
    }
    if not db_ok:
        logger.error("❌ Health check failed: database unavailable")
        return JSONResponse(status_code=503, content=body)
    return body
