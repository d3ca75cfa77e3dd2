"""Stored position record, typed AIS payload variants and API response schemas."""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# ─────────────────────────────────────────────────────────────
# Type-specific AIS payloads (Message[<MessageType>])
# ─────────────────────────────────────────────────────────────
class PositionReportBody(BaseModel):
    """Class A position report (AIS msg 1/2/3)."""
    model_config = ConfigDict(extra="allow")

    MessageID: Optional[int] = None
    UserID: Optional[int] = None
    Latitude: Optional[float] = None
    Longitude: Optional[float] = None
    Sog: Optional[float] = None
    Cog: Optional[float] = None
    TrueHeading: Optional[int] = None
    NavigationalStatus: Optional[int] = None
    RateOfTurn: Optional[int] = None


class ClassBPositionReportBody(BaseModel):
    """Standard class B position report (AIS msg 18)."""
    model_config = ConfigDict(extra="allow")

    MessageID: Optional[int] = None
    UserID: Optional[int] = None
    Latitude: Optional[float] = None
    Longitude: Optional[float] = None
    Sog: Optional[float] = None
    Cog: Optional[float] = None
    TrueHeading: Optional[int] = None


class ExtendedClassBPositionReportBody(ClassBPositionReportBody):
    """Extended class B position report (AIS msg 19)."""
    Name: Optional[str] = None
    Type: Optional[int] = None


ReportBody = PositionReportBody | ClassBPositionReportBody | ExtendedClassBPositionReportBody

REPORT_VARIANTS: dict[str, type[BaseModel]] = {
    "PositionReport": PositionReportBody,
    "StandardClassBPositionReport": ClassBPositionReportBody,
    "ExtendedClassBPositionReport": ExtendedClassBPositionReportBody,
}


# ─────────────────────────────────────────────────────────────
# Stored record
# ─────────────────────────────────────────────────────────────
class GeoPoint(BaseModel):
    """GeoJSON point; coordinates are [longitude, latitude]."""
    type: Literal["Point"] = "Point"
    coordinates: list[float] = Field(min_length=2, max_length=2)


class PositionMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mmsi: int
    ship_name: Optional[str] = Field(default=None, alias="shipName")
    latitude: float
    longitude: float
    time_utc: datetime = Field(alias="timeUtc")


class PositionRecord(BaseModel):
    """Latest known state of one vessel, keyed by MMSI.

    ``message`` keeps the raw type-specific payload exactly as received so it
    round-trips through storage; ``report()`` gives a typed view of it for the
    known position report variants.
    """
    model_config = ConfigDict(populate_by_name=True)

    mmsi: int
    message_type: str = Field(alias="messageType")
    message: dict[str, Any] = Field(default_factory=dict)
    metadata: PositionMetadata
    geojson: GeoPoint

    def report(self) -> Optional[ReportBody]:
        variant = REPORT_VARIANTS.get(self.message_type)
        body = self.message.get(self.message_type)
        if variant is None or not isinstance(body, dict):
            return None
        return variant.model_validate(body)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "PositionRecord":
        return cls.model_validate(doc)


# ─────────────────────────────────────────────────────────────
# Subscriber protocol
# ─────────────────────────────────────────────────────────────
class SubscribeMessage(BaseModel):
    """First client message: {"type": "subscribe", "boundingBox": [[lon, lat], [lon, lat]]}."""
    type: Literal["subscribe"]
    boundingBox: list[list[float]]


# ─────────────────────────────────────────────────────────────
# API responses
# ─────────────────────────────────────────────────────────────
class StatsOut(BaseModel):
    """Ingestion stats plus store and session gauges."""
    status: str = "unknown"
    received: int = 0
    stored: int = 0
    discarded: int = 0
    errors: int = 0
    vessels: int = 0
    sessions: int = 0
    zone_name: str = ""
    bbox: dict[str, float] = {}
