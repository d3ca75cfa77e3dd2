"""
AIS API: stats and latest vessel record.

- GET /stats          — ingestion stats (in-process or from Redis) + store/session gauges
- GET /vessels/{mmsi} — latest stored position record for one vessel
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from aiswatch.db.schemas import PositionRecord, StatsOut
from aiswatch.services.context import AppContext, get_context
from aiswatch.services.redis_client import read_stats

router = APIRouter()
logger = logging.getLogger("ais.api")


async def _ingest_stats(ctx: AppContext) -> dict[str, Any]:
    if ctx.worker is not None or ctx.redis is None:
        return dict(ctx.stats)
    try:
        remote = await read_stats(ctx.redis, ctx.settings.REDIS_STATS_KEY)
    except Exception as exc:
        logger.warning("stats read error: %s", exc)
        remote = None
    return remote or {"status": "unknown"}


@router.get("/stats", response_model=StatsOut)
async def stats(ctx: AppContext = Depends(get_context)):
    data = await _ingest_stats(ctx)
    cfg = ctx.settings
    lon_west = min(cfg.ZONE_LON_MIN, cfg.ZONE_LON_MAX)
    lon_east = max(cfg.ZONE_LON_MIN, cfg.ZONE_LON_MAX)
    return StatsOut(
        status=data.get("status", "unknown"),
        received=data.get("received", 0),
        stored=data.get("stored", 0),
        discarded=data.get("discarded", 0),
        errors=data.get("errors", 0),
        vessels=await ctx.store.count(),
        sessions=ctx.sessions.active,
        zone_name=cfg.ZONE_NAME,
        bbox={
            "lat_min": cfg.ZONE_LAT_MIN,
            "lat_max": cfg.ZONE_LAT_MAX,
            "lon_min": lon_west,
            "lon_max": lon_east,
        },
    )


@router.get("/vessels/{mmsi}", response_model=PositionRecord, summary="Latest position by MMSI")
async def vessel_by_mmsi(mmsi: int, ctx: AppContext = Depends(get_context)):
    doc = await ctx.store.get(mmsi)
    if doc is None:
        raise HTTPException(status_code=404, detail="Vessel not found")
    return PositionRecord.from_document(doc)
