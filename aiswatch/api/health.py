"""Health endpoints: liveness and readiness."""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from aiswatch.services.context import AppContext, get_context

router = APIRouter(tags=["health"])
logger = logging.getLogger("ais.health")


@router.get("/health/live")
async def liveness():
    """Liveness: process is running. No dependencies checked."""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness(ctx: AppContext = Depends(get_context)):
    """Readiness: position store and (if configured) Redis are reachable."""
    errors = []
    try:
        await ctx.store.ping()
    except Exception as e:
        logger.warning("Store readiness check failed: %s", e)
        errors.append("store")

    if ctx.redis is not None:
        try:
            await ctx.redis.ping()
        except Exception as e:
            logger.warning("Redis readiness check failed: %s", e)
            errors.append("redis")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "errors": errors},
        )
    return {"status": "ok"}
