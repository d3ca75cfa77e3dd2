"""
AISstream WebSocket client.

- Sends the subscription once, right after connecting.
- messages() yields raw frames until the connection goes away; no reconnect.
- close() sends a close frame and waits (bounded) for the peer to acknowledge.
"""
import json
import logging
from typing import Any, AsyncIterator, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosedError

logger = logging.getLogger("ais.feed")


class FeedSubscriptionError(Exception):
    """Raised when AISStream returns a subscription/authentication error."""


def extract_stream_error(raw: str | bytes) -> str | None:
    """
    AISStream docs define server-side failures as: {"error": "..."}.
    Parse and surface these explicitly (e.g., invalid API key/filter type).
    """
    try:
        msg = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None
    if not isinstance(msg, dict):
        return None
    err = msg.get("error") or msg.get("Error")
    if isinstance(err, str):
        err = err.strip()
        return err or None
    return None


class FeedClient:
    def __init__(
        self,
        url: str,
        api_key: str,
        bounding_boxes: list,
        message_types: list[str],
        *,
        close_timeout: float = 5.0,
        connect: Callable[..., Any] = websockets.connect,
    ):
        self._url = url
        self._api_key = api_key
        self._bounding_boxes = bounding_boxes
        self._message_types = message_types
        self._close_timeout = close_timeout
        self._connect = connect
        self._ws: Optional[Any] = None

    def subscription(self) -> dict[str, Any]:
        # BoundingBoxes are [[lat, lon], [lat, lon]] on this boundary only.
        return {
            "Apikey": self._api_key.strip(),
            "BoundingBoxes": self._bounding_boxes,
            "FilterMessageTypes": list(self._message_types),
        }

    async def connect(self) -> None:
        logger.info("connecting to %s", self._url)
        self._ws = await self._connect(
            self._url,
            ping_interval=20,
            ping_timeout=30,
            close_timeout=self._close_timeout,
        )
        await self._ws.send(json.dumps(self.subscription()))
        logger.info("AISstream subscription sent (%d boxes)", len(self._bounding_boxes))

    async def messages(self) -> AsyncIterator[str | bytes]:
        if self._ws is None:
            await self.connect()
        try:
            async for raw in self._ws:
                stream_error = extract_stream_error(raw)
                if stream_error:
                    raise FeedSubscriptionError(stream_error)
                yield raw
        except ConnectionClosedError as exc:
            logger.error("feed read error: %s", exc)
        else:
            logger.warning("feed connection closed by peer")

    async def close(self) -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        try:
            await ws.close()
        except Exception as exc:
            logger.warning("write close: %s", exc)
