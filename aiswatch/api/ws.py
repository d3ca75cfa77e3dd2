"""Subscriber WebSocket endpoint; each connection gets its own SubscriptionSession."""
from fastapi import WebSocket

from aiswatch.services.context import get_ws_context


async def ais_subscription(websocket: WebSocket) -> None:
    """
    First message: {"type": "subscribe", "boundingBox": [[lon, lat], [lon, lat]]}.
    Replies {"status": "subscribed"}, then one FeatureCollection per tick.
    """
    context = get_ws_context(websocket)
    await context.sessions.handle(websocket)
