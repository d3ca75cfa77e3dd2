"""
FastAPI application: live AIS positions over WebSocket.

- Health: /health/live, /health/ready
- API: /api/v1/stats, /api/v1/vessels/{mmsi}
- WebSocket: /ais (bounding-box subscription, one FeatureCollection per tick)
"""
import logging
import signal
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from aiswatch.api.health import router as health_router
from aiswatch.api.router import router as api_router
from aiswatch.api.ws import ais_subscription
from aiswatch.core.config import Settings, settings
from aiswatch.core.log import setup_logging
from aiswatch.services.context import AppContext
from aiswatch.services.redis_client import create_redis
from aiswatch.services.store import build_store
from ingester.main import IngestionWorker

logger = logging.getLogger("ais.api")


def _feed_exhausted() -> None:
    # no upstream alternative: take the whole server down
    logger.critical("Ingestion stopped; shutting down")
    signal.raise_signal(signal.SIGTERM)


async def build_context(cfg: Settings) -> AppContext:
    store = await build_store(cfg)
    r = create_redis(cfg.REDIS_URL) if cfg.REDIS_URL else None
    context = AppContext.create(cfg, store, redis=r)
    if cfg.INGEST_IN_PROCESS:
        context.worker = IngestionWorker(
            store, cfg, stats=context.stats, on_exit=_feed_exhausted
        )
    return context


def create_app(context: Optional[AppContext] = None, cfg: Settings = settings) -> FastAPI:
    """Build the app. A prebuilt context is used as-is and left open on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if context is not None:
            app.state.context = context
            yield
            return

        setup_logging(cfg.LOG_LEVEL)
        ctx = await build_context(cfg)
        app.state.context = ctx
        if ctx.worker is not None:
            await ctx.worker.start()

        yield

        if ctx.worker is not None:
            await ctx.worker.stop()
        await ctx.store.close()
        if ctx.redis is not None:
            await ctx.redis.aclose()

    app = FastAPI(
        title="AIS live positions",
        description="Latest vessel positions from AISstream, pushed as GeoJSON per bounding box",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context

    app.include_router(health_router)
    app.include_router(api_router, prefix=cfg.API_PREFIX)
    app.add_api_websocket_route(cfg.WS_PATH, ais_subscription)
    return app


def main() -> None:
    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
