# tests/conftest.py
"""
Shared fixtures: feed message factory, fake sockets, settings.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import pytest

from aiswatch.core.config import Settings
from aiswatch.services.store import InMemoryPositionStore


def format_time_utc(ts: datetime) -> str:
    """AISstream time_utc format, nanosecond precision."""
    ts = ts.astimezone(timezone.utc)
    return f"{ts:%Y-%m-%d %H:%M:%S}.{ts.microsecond:06d}000 +0000 UTC"


def feed_message(
    mmsi: int = 123456789,
    lat: float = 41.0,
    lon: float = -71.0,
    *,
    ts: Optional[datetime] = None,
    ship_name: str = "NORDIC STAR         ",
    heading: Any = 87,
    message_type: str = "PositionReport",
) -> str:
    ts = ts or datetime.now(timezone.utc)
    return json.dumps(
        {
            "MessageType": message_type,
            "Message": {
                message_type: {
                    "MessageID": 1,
                    "UserID": mmsi,
                    "Latitude": lat,
                    "Longitude": lon,
                    "Sog": 12.3,
                    "Cog": 85.0,
                    "TrueHeading": heading,
                    "NavigationalStatus": 0,
                    "Valid": True,
                }
            },
            "MetaData": {
                "MMSI": mmsi,
                "MMSI_String": str(mmsi),
                "ShipName": ship_name,
                "latitude": lat,
                "longitude": lon,
                "time_utc": format_time_utc(ts),
            },
        }
    )


_DISCONNECT = object()


class FakeWebSocket:
    """Stands in for fastapi.WebSocket inside a SubscriptionSession."""

    def __init__(self, incoming: Iterable[str | bytes] = (), fail_send: bool = False):
        self.incoming: asyncio.Queue[Any] = asyncio.Queue()
        for item in incoming:
            self.incoming.put_nowait(item)
        self.sent: list[str] = []
        self.fail_send = fail_send
        self.close_code: Optional[int] = None
        self.client = None

    async def accept(self) -> None:
        return None

    async def receive(self) -> dict[str, Any]:
        """ASGI-style messages, as fastapi.WebSocket.receive() returns them."""
        item = await self.incoming.get()
        if item is _DISCONNECT:
            return {"type": "websocket.disconnect", "code": 1000}
        if isinstance(item, bytes):
            return {"type": "websocket.receive", "bytes": item}
        return {"type": "websocket.receive", "text": item}

    async def send_text(self, data: str) -> None:
        if self.fail_send:
            raise RuntimeError("peer gone")
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.close_code = code

    def disconnect(self) -> None:
        self.incoming.put_nowait(_DISCONNECT)

    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(s) for s in self.sent]


async def wait_for_sent(ws: FakeWebSocket, count: int, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while len(ws.sent) < count:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


class FakeFeed:
    """Stands in for ingester.feed.FeedClient."""

    def __init__(self, frames: Iterable[str | bytes]):
        self.frames = list(frames)
        self.closed = False

    async def messages(self):
        for raw in self.frames:
            yield raw

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        AISSTREAM_API_KEY="test-key",
        STORE_BACKEND="memory",
        REDIS_URL="",
        SESSION_TICK_SEC=0.01,
        RECENCY_WINDOW_SEC=120.0,
        STORE_DEADLINE_SEC=1.0,
        INGEST_IN_PROCESS=False,
    )


@pytest.fixture
def store() -> InMemoryPositionStore:
    return InMemoryPositionStore()
