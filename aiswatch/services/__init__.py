from aiswatch.services.geojson import BoundingBox, feature_collection
from aiswatch.services.session import SessionState, SubscriptionSession
from aiswatch.services.session_manager import SessionManager
from aiswatch.services.store import (
    InMemoryPositionStore,
    PositionStore,
    SqlPositionStore,
    StoreError,
    build_store,
)

__all__ = [
    "BoundingBox",
    "feature_collection",
    "SessionState",
    "SubscriptionSession",
    "SessionManager",
    "InMemoryPositionStore",
    "PositionStore",
    "SqlPositionStore",
    "StoreError",
    "build_store",
]
