"""
AIS ingestion worker.

- Connects to AISstream once, subscribes to the configured zone.
- Normalizes each message and upserts the latest position per MMSI into the store.
- Bad messages and store failures are logged and skipped; the feed ending is terminal.
- Optionally writes stats to Redis for an API running in another process.
"""
import asyncio
import logging
import signal
import sys
from typing import Any, Callable, Optional

from aiswatch.core.config import Settings, settings
from aiswatch.core.log import setup_logging
from aiswatch.services.context import new_stats
from aiswatch.services.redis_client import create_redis, write_stats
from aiswatch.services.store import InMemoryPositionStore, PositionStore, build_store
from ingester.feed import FeedClient, FeedSubscriptionError
from ingester.normalizer import MessageDecodeError, parse_message

logger = logging.getLogger("ais.ingest")


def build_feed(cfg: Settings) -> FeedClient:
    return FeedClient(
        cfg.AISSTREAM_WS_URL,
        cfg.AISSTREAM_API_KEY,
        cfg.bounding_box(),
        cfg.FEED_MESSAGE_TYPES,
        close_timeout=cfg.FEED_CLOSE_TIMEOUT_SEC,
    )


class IngestionWorker:
    def __init__(
        self,
        store: PositionStore,
        cfg: Settings = settings,
        *,
        feed: Optional[FeedClient] = None,
        stats: Optional[dict[str, Any]] = None,
        redis: Any = None,
        on_exit: Optional[Callable[[], None]] = None,
    ):
        self._store = store
        self._settings = cfg
        self._feed = feed if feed is not None else build_feed(cfg)
        self.stats = stats if stats is not None else new_stats()
        self._redis = redis
        self._on_exit = on_exit
        self._stopping = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self.ingest_task: Optional[asyncio.Task[Any]] = None

    def _spawn(self, coro: Any, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def start(self) -> bool:
        if not self._settings.AISSTREAM_API_KEY.strip():
            self.stats["status"] = "auth error (missing AISSTREAM_API_KEY)"
            logger.error(
                "AISSTREAM_API_KEY is empty; set a valid key from https://aisstream.io/apikeys"
            )
            if self._on_exit is not None:
                self._on_exit()
            return False
        self.ingest_task = self._spawn(self._ingest_loop(), "ais-ingest")
        if self._redis is not None:
            self._spawn(self._stats_loop(), "ais-stats")
        logger.info(
            "AIS ingester started — zone: %s [%.4f,%.4f / %.4f,%.4f]",
            self._settings.ZONE_NAME,
            self._settings.ZONE_LAT_MIN,
            self._settings.ZONE_LAT_MAX,
            self._settings.ZONE_LON_MIN,
            self._settings.ZONE_LON_MAX,
        )
        return True

    async def stop(self) -> None:
        self._stopping = True
        await self._feed.close()
        for t in list(self._tasks):
            t.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.stats["status"] = "stopped"
        logger.info("AIS ingester stopped")

    async def _ingest_loop(self) -> None:
        try:
            self.stats["status"] = "streaming"
            async for raw in self._feed.messages():
                await self.handle(raw)
            if not self._stopping:
                self.stats["status"] = "feed closed"
                logger.error("AIS feed ended; no reconnect, ingestion stopped")
        except FeedSubscriptionError as exc:
            self.stats["errors"] += 1
            self.stats["status"] = f"stream error ({exc})"
            logger.error(
                "AISStream subscription/authentication failed: %s. "
                "Check AISSTREAM_API_KEY and FilterMessageTypes.",
                exc,
            )
        except Exception as exc:
            self.stats["errors"] += 1
            self.stats["status"] = f"feed error ({exc})"
            logger.error("AIS feed error: %s", exc)
        finally:
            if not self._stopping and self._on_exit is not None:
                self._on_exit()

    async def handle(self, raw: str | bytes) -> bool:
        """Normalize and store one feed message. Returns True if it was stored."""
        self.stats["received"] += 1
        try:
            record = parse_message(raw)
        except MessageDecodeError as exc:
            self.stats["discarded"] += 1
            logger.warning("unmarshal error: %s", exc)
            return False
        try:
            await asyncio.wait_for(
                self._store.upsert(record), timeout=self._settings.STORE_DEADLINE_SEC
            )
        except Exception as exc:
            self.stats["errors"] += 1
            logger.warning("store upsert error for MMSI %s: %s", record.mmsi, exc)
            return False
        self.stats["stored"] += 1
        logger.debug("Ingested a %s for MMSI %s", record.message_type, record.mmsi)
        return True

    async def _stats_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.STATS_INTERVAL_SEC)
            try:
                await write_stats(self._redis, self._settings.REDIS_STATS_KEY, self.stats)
            except Exception as exc:
                logger.debug("stats write error: %s", exc)


async def run_worker(cfg: Settings = settings) -> int:
    setup_logging(cfg.LOG_LEVEL)
    store = await build_store(cfg)
    if isinstance(store, InMemoryPositionStore):
        logger.warning(
            "STORE_BACKEND=memory in a standalone ingester; positions are not visible to the API"
        )
    r = create_redis(cfg.REDIS_URL) if cfg.REDIS_URL else None
    worker = IngestionWorker(store, cfg, redis=r)

    interrupted = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, interrupted.set)

    exit_code = 0
    try:
        if not await worker.start():
            return 1
        waiter = asyncio.create_task(interrupted.wait())
        done, _ = await asyncio.wait(
            {waiter, worker.ingest_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if waiter in done:
            logger.info("interrupt")
        else:
            waiter.cancel()
            exit_code = 1
    finally:
        await worker.stop()
        await store.close()
        if r is not None:
            await r.aclose()
    return exit_code


def main() -> None:
    sys.exit(asyncio.run(run_worker()))


if __name__ == "__main__":
    main()
