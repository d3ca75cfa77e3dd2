"""
Latest-position store: one document per MMSI, queried by bounding box and recency.

- InMemoryPositionStore: dict guarded by an asyncio.Lock; used when ingest runs in-process.
- SqlPositionStore: one upsert-keyed table (PostgreSQL/asyncpg, SQLite/aiosqlite) shared
  by a standalone ingester process and the API.

Documents have the shape produced by PositionRecord.to_document():
{"mmsi", "messageType", "message", "metadata": {...}, "geojson": {"type", "coordinates"}}.
"""
import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine

from aiswatch.core.config import Settings
from aiswatch.db.database import create_engine, create_session_factory, init_models
from aiswatch.db.models import VesselPosition
from aiswatch.db.schemas import PositionRecord
from aiswatch.services.geojson import BoundingBox, point_coordinates

logger = logging.getLogger("ais.store")

Document = dict[str, Any]


class StoreError(Exception):
    """Raised when a store operation fails or misses its deadline."""


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PositionStore(ABC):
    """Upsert-by-MMSI table with a bounding-box + recency range query."""

    @abstractmethod
    async def upsert(self, record: PositionRecord) -> None:
        """Replace the full record for record.mmsi, creating it if absent."""

    @abstractmethod
    async def query_within(self, box: BoundingBox, since: datetime) -> list[Document]:
        """Documents whose point lies inside box (edges included) and timeUtc >= since."""

    @abstractmethod
    async def get(self, mmsi: int) -> Optional[Document]:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


class InMemoryPositionStore(PositionStore):
    def __init__(self) -> None:
        self._docs: dict[int, Document] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, record: PositionRecord) -> None:
        doc = copy.deepcopy(record.to_document())
        doc["metadata"]["timeUtc"] = _utc(doc["metadata"]["timeUtc"])
        async with self._lock:
            self._docs[record.mmsi] = doc

    async def query_within(self, box: BoundingBox, since: datetime) -> list[Document]:
        since = _utc(since)
        async with self._lock:
            return [
                copy.deepcopy(doc)
                for doc in self._docs.values()
                if self._matches(doc, box, since)
            ]

    @staticmethod
    def _matches(doc: Document, box: BoundingBox, since: datetime) -> bool:
        coords = point_coordinates(doc)
        if coords is None:
            return False
        ts = doc.get("metadata", {}).get("timeUtc")
        if not isinstance(ts, datetime):
            return False
        return box.contains(coords[0], coords[1]) and ts >= since

    async def get(self, mmsi: int) -> Optional[Document]:
        async with self._lock:
            doc = self._docs.get(mmsi)
            return copy.deepcopy(doc) if doc is not None else None

    async def count(self) -> int:
        async with self._lock:
            return len(self._docs)


_UPDATE_COLUMNS = (
    "message_type",
    "message",
    "ship_name",
    "latitude",
    "longitude",
    "time_utc",
    "geometry",
)


def _row_from_record(record: PositionRecord) -> dict[str, Any]:
    lon, lat = record.geojson.coordinates
    return {
        "mmsi": record.mmsi,
        "message_type": record.message_type,
        "message": record.message,
        "ship_name": record.metadata.ship_name,
        "latitude": lat,
        "longitude": lon,
        "time_utc": _utc(record.metadata.time_utc),
        "geometry": record.geojson.model_dump(),
    }


def _document_from_row(row: VesselPosition) -> Document:
    return {
        "mmsi": row.mmsi,
        "messageType": row.message_type,
        "message": row.message,
        "metadata": {
            "mmsi": row.mmsi,
            "shipName": row.ship_name,
            "latitude": row.latitude,
            "longitude": row.longitude,
            "timeUtc": _utc(row.time_utc),
        },
        "geojson": row.geometry,
    }


class SqlPositionStore(PositionStore):
    def __init__(self, engine: AsyncEngine, *, deadline: float = 5.0):
        self._engine = engine
        self._sessions = create_session_factory(engine)
        self._deadline = deadline

    @classmethod
    async def connect(cls, url: str, *, deadline: float = 5.0) -> "SqlPositionStore":
        engine = create_engine(url)
        await init_models(engine)
        logger.info("SQL position store ready (%s)", engine.dialect.name)
        return cls(engine, deadline=deadline)

    def _insert(self):
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise StoreError(f"Unsupported database dialect: {dialect}")

    async def upsert(self, record: PositionRecord) -> None:
        stmt = self._insert()(VesselPosition).values(**_row_from_record(record))
        stmt = stmt.on_conflict_do_update(
            index_elements=["mmsi"],
            set_={k: getattr(stmt.excluded, k) for k in _UPDATE_COLUMNS},
        )
        async with self._sessions() as s:
            await s.execute(stmt)
            await s.commit()

    async def query_within(self, box: BoundingBox, since: datetime) -> list[Document]:
        stmt = select(VesselPosition).where(
            VesselPosition.longitude.between(box.lon_min, box.lon_max),
            VesselPosition.latitude.between(box.lat_min, box.lat_max),
            VesselPosition.time_utc >= _utc(since),
        )
        async with self._sessions() as s:
            try:
                result = await asyncio.wait_for(s.stream(stmt), timeout=self._deadline)
                rows = await asyncio.wait_for(result.scalars().all(), timeout=self._deadline)
            except asyncio.TimeoutError as exc:
                raise StoreError("position query exceeded deadline") from exc
        return [_document_from_row(row) for row in rows]

    async def get(self, mmsi: int) -> Optional[Document]:
        async with self._sessions() as s:
            row = await s.get(VesselPosition, mmsi)
            return _document_from_row(row) if row is not None else None

    async def count(self) -> int:
        async with self._sessions() as s:
            result = await s.execute(select(func.count()).select_from(VesselPosition))
            return int(result.scalar_one())

    async def ping(self) -> None:
        async with self._sessions() as s:
            await s.execute(text("SELECT 1"))

    async def close(self) -> None:
        await self._engine.dispose()


async def build_store(settings: Settings) -> PositionStore:
    backend = settings.STORE_BACKEND.strip().lower()
    if backend == "memory":
        return InMemoryPositionStore()
    if backend == "sql":
        return await SqlPositionStore.connect(
            settings.DATABASE_URL, deadline=settings.STORE_DEADLINE_SEC
        )
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")
