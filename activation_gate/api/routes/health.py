from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from activation_gate.db.redis import ping_redis

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness check. Returns 503 during graceful shutdown."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "activation-gate"},
        )
    return {"status": "healthy", "service": "activation-gate"}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness check - verifies Redis is reachable."""
    components = getattr(request.app.state, "components", None)
    client = components.store.redis if components is not None else None
    checks = {"redis": await ping_redis(client)}

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
