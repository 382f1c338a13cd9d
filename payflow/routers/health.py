"""
Health Router
Probes for load balancers and orchestrators.

Endpoints:
- /api/healthz - Liveness (is the process running?)
- /api/readyz  - Readiness (can the storage backend be reached?)
"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from payflow import __version__
from payflow.core.deps import get_storage
from payflow.services.storage.base import Storage

router = APIRouter(tags=["Health"])


@router.get("/healthz")
async def health_check():
    """Liveness probe. Always 200 while the process is alive."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
    }


@router.get("/readyz")
async def readiness_check(request: Request, storage: Storage = Depends(get_storage)):
    """
    Readiness probe - 200 when storage answers, 503 otherwise.
    """
    start = time.perf_counter()
    storage_ok = await storage.ping()
    latency_ms = round((time.perf_counter() - start) * 1000, 2)

    body = {
        "status": "ready" if storage_ok else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "storage": {
                "ok": storage_ok,
                "backend": storage.backend_name,
                "latency_ms": latency_ms,
            },
            "auth_mode": request.app.state.authenticator.mode,
        },
    }
    return JSONResponse(status_code=200 if storage_ok else 503, content=body)
