"""
Redis client for sharing ingestion stats between processes.

- A standalone ingester periodically writes its stats to a key.
- The API reads that key for GET /stats when ingestion is not in-process.
"""
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

logger = logging.getLogger("ais.redis")


def create_redis(url: str) -> redis.Redis:
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
    )


async def write_stats(r: redis.Redis, key: str, stats: dict[str, Any]) -> None:
    """Write ingester stats; they expire if the ingester stops refreshing them."""
    await r.set(key, json.dumps(stats), ex=60)


async def read_stats(r: redis.Redis, key: str) -> Optional[dict[str, Any]]:
    raw = await r.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Ignoring unreadable stats payload at %s", key)
        return None
