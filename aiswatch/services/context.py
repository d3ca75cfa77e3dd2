"""
Process-wide runtime state, owned explicitly.

Built at app lifespan start (or handed in by tests) and reached through
app.state.context; nothing here is a module-level global.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import Request, WebSocket

from aiswatch.core.config import Settings
from aiswatch.services.session_manager import SessionManager
from aiswatch.services.store import PositionStore

if TYPE_CHECKING:
    import redis.asyncio as redis

    from ingester.main import IngestionWorker


def new_stats() -> Dict[str, Any]:
    return {
        "status": "stopped",
        "received": 0,
        "stored": 0,
        "discarded": 0,
        "errors": 0,
    }


@dataclass
class AppContext:
    settings: Settings
    store: PositionStore
    sessions: SessionManager
    stats: Dict[str, Any] = field(default_factory=new_stats)
    redis: Optional["redis.Redis"] = None
    worker: Optional["IngestionWorker"] = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        store: PositionStore,
        redis: Optional["redis.Redis"] = None,
    ) -> "AppContext":
        return cls(
            settings=settings,
            store=store,
            sessions=SessionManager(store, settings),
            redis=redis,
        )


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_ws_context(websocket: WebSocket) -> AppContext:
    return websocket.app.state.context
