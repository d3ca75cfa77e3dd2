"""
Per-client subscription session.

AWAITING_FILTER -> ACTIVE -> CLOSED, CLOSED reachable from any state.

- AWAITING_FILTER: exactly one message, {"type": "subscribe", "boundingBox": [[lon, lat], [lon, lat]]}.
  Anything else gets {"error": "..."} and the connection is closed; no query runs.
- ACTIVE: {"status": "subscribed"}, then a pusher (one query/convert/push cycle per tick)
  and a passive reader (only there to notice the peer going away). Whichever finishes
  first closes the session.
"""
import asyncio
import enum
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import WebSocket, status
from pydantic import ValidationError

from aiswatch.db.schemas import SubscribeMessage
from aiswatch.services.geojson import BoundingBox, dumps, feature_collection
from aiswatch.services.store import PositionStore

logger = logging.getLogger("ais.session")

INVALID_FORMAT = "Invalid subscription message format"
NOT_SUBSCRIBE = "First message must be a subscribe message"
BAD_BOUNDING_BOX = "Bounding box must contain exactly 2 coordinate pairs [lon, lat]"
OUT_OF_RANGE = "Bounding box coordinates out of range"


class SessionState(str, enum.Enum):
    AWAITING_FILTER = "awaiting_filter"
    ACTIVE = "active"
    CLOSED = "closed"


class SubscriptionError(Exception):
    """The client's first message is not a valid subscription; str(exc) is sent back."""


def parse_subscription(raw: str | bytes) -> BoundingBox:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        raise SubscriptionError(INVALID_FORMAT)
    if not isinstance(payload, dict):
        raise SubscriptionError(INVALID_FORMAT)
    if payload.get("type") != "subscribe":
        raise SubscriptionError(NOT_SUBSCRIBE)
    try:
        msg = SubscribeMessage.model_validate(payload)
    except ValidationError:
        raise SubscriptionError(BAD_BOUNDING_BOX)
    box = msg.boundingBox
    if len(box) != 2 or any(len(pair) != 2 for pair in box):
        raise SubscriptionError(BAD_BOUNDING_BOX)
    for lon, lat in box:
        if not (-180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0):
            raise SubscriptionError(OUT_OF_RANGE)
    return BoundingBox.from_corners(box)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionSession:
    def __init__(
        self,
        websocket: WebSocket,
        store: PositionStore,
        *,
        tick_interval: float = 1.0,
        recency_window: float = 120.0,
        query_timeout: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
        peer: str = "unknown",
    ):
        self._ws = websocket
        self._store = store
        self._tick_interval = tick_interval
        self._recency_window = timedelta(seconds=recency_window)
        self._query_timeout = query_timeout
        self._clock = clock
        self._close_code = status.WS_1000_NORMAL_CLOSURE
        self.peer = peer
        self.state = SessionState.AWAITING_FILTER
        self.box: Optional[BoundingBox] = None
        self.ticks = 0

    async def run(self) -> None:
        try:
            self.box = await self._await_filter()
            if self.box is None:
                return
            self.state = SessionState.ACTIVE
            logger.info(
                "Client %s subscribed with bounding box: [[%.6f, %.6f], [%.6f, %.6f]]",
                self.peer,
                self.box.lon_min,
                self.box.lat_min,
                self.box.lon_max,
                self.box.lat_max,
            )
            await self._ws.send_text(dumps({"status": "subscribed"}))
            await self._run_active()
        finally:
            await self.close()

    async def _await_filter(self) -> Optional[BoundingBox]:
        try:
            message = await self._ws.receive()
        except Exception as exc:
            logger.info("Failed to read subscription message from %s: %s", self.peer, exc)
            return None
        if message["type"] == "websocket.disconnect":
            logger.info("Client %s left before subscribing", self.peer)
            return None
        # text or binary frame, both are decoded as JSON
        raw = message.get("text")
        if raw is None:
            raw = message.get("bytes")
        try:
            return parse_subscription(raw)
        except SubscriptionError as exc:
            logger.warning("Rejected subscription from %s: %s", self.peer, exc)
            self._close_code = status.WS_1008_POLICY_VIOLATION
            await self._ws.send_text(dumps({"error": str(exc)}))
            return None

    async def _run_active(self) -> None:
        pusher = asyncio.create_task(self._push_loop(), name=f"session-push-{self.peer}")
        reader = asyncio.create_task(self._read_loop(), name=f"session-read-{self.peer}")
        tasks = {pusher, reader}
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _push_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._tick_interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            try:
                await self.tick()
            except Exception as exc:
                logger.info("Write error for %s: %s", self.peer, exc)
                return
            # ticks that fell behind are dropped, not queued
            next_tick += self._tick_interval
            while next_tick <= loop.time():
                next_tick += self._tick_interval

    async def _read_loop(self) -> None:
        while True:
            try:
                message = await self._ws.receive()
            except Exception as exc:
                logger.info("Read error for %s: %s", self.peer, exc)
                return
            if message["type"] == "websocket.disconnect":
                return
            logger.debug("Ignoring %s frame from %s", message["type"], self.peer)

    async def tick(self) -> bool:
        """One query/convert/push cycle. Returns False when the query failed and the tick was skipped.

        Push failures propagate: a failed write means the peer is gone.
        """
        if self.box is None:
            raise RuntimeError("Session has no bounding box")
        since = self._clock() - self._recency_window
        try:
            docs = await asyncio.wait_for(
                self._store.query_within(self.box, since), timeout=self._query_timeout
            )
        except Exception as exc:
            logger.warning("Position query error for %s: %s", self.peer, exc)
            return False
        await self._ws.send_text(dumps(feature_collection(docs)))
        self.ticks += 1
        return True

    async def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        try:
            await self._ws.close(code=self._close_code)
        except Exception as exc:
            # peer already gone
            logger.debug("Close for %s: %s", self.peer, exc)
