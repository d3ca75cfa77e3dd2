"""Accepts subscriber WebSockets and runs one independent SubscriptionSession per connection."""
import logging

from fastapi import WebSocket

from aiswatch.core.config import Settings
from aiswatch.services.session import SubscriptionSession
from aiswatch.services.store import PositionStore

logger = logging.getLogger("ais.session")


def _peer(websocket: WebSocket) -> str:
    client = websocket.client
    if client is None:
        return "unknown"
    return f"{client.host}:{client.port}"


class SessionManager:
    def __init__(self, store: PositionStore, settings: Settings):
        self._store = store
        self._settings = settings
        self._sessions: set[SubscriptionSession] = set()

    @property
    def active(self) -> int:
        return len(self._sessions)

    def create_session(self, websocket: WebSocket) -> SubscriptionSession:
        return SubscriptionSession(
            websocket,
            self._store,
            tick_interval=self._settings.SESSION_TICK_SEC,
            recency_window=self._settings.RECENCY_WINDOW_SEC,
            query_timeout=self._settings.STORE_DEADLINE_SEC,
            peer=_peer(websocket),
        )

    async def handle(self, websocket: WebSocket) -> None:
        await websocket.accept()
        session = self.create_session(websocket)
        self._sessions.add(session)
        logger.info("New WebSocket connection established from %s", session.peer)
        try:
            await session.run()
        except Exception:
            logger.exception("Session for %s failed", session.peer)
        finally:
            self._sessions.discard(session)
            logger.info(
                "WebSocket connection closed for %s (%d active)", session.peer, self.active
            )
