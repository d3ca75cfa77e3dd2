from aiswatch.db.database import create_engine, create_session_factory, init_models
from aiswatch.db.models import Base, VesselPosition
from aiswatch.db.schemas import PositionRecord

__all__ = [
    "create_engine",
    "create_session_factory",
    "init_models",
    "Base",
    "VesselPosition",
    "PositionRecord",
]
