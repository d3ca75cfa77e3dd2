"""
AISstream message -> PositionRecord.

Feed messages look like:
    {"MessageType": "PositionReport",
     "Message": {"PositionReport": {...}},
     "MetaData": {"MMSI": 123456789, "ShipName": "...", "latitude": 41.0,
                  "longitude": -71.0, "time_utc": "2022-12-29 18:22:32.318353 +0000 UTC"}}

Any decoding problem raises MessageDecodeError; the caller logs it and moves on.
"""
import json
import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from aiswatch.db.schemas import GeoPoint, PositionMetadata, PositionRecord


class MessageDecodeError(Exception):
    """A single feed message could not be decoded into a PositionRecord."""


# "YYYY-MM-DD HH:MM:SS[.fraction] ±ZZZZ UTC"; aisstream sends up to nanoseconds.
_TIME_UTC_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})(?:\.(\d+))? ([+-]\d{4}) UTC$"
)


def parse_time_utc(raw: str) -> datetime:
    m = _TIME_UTC_RE.match(raw.strip())
    if not m:
        raise ValueError(f"unrecognised time_utc: {raw!r}")
    base, fraction, offset = m.groups()
    micros = (fraction or "")[:6].ljust(6, "0")
    ts = datetime.strptime(f"{base}.{micros} {offset}", "%Y-%m-%d %H:%M:%S.%f %z")
    return ts.astimezone(timezone.utc)


class FeedMetaData(BaseModel):
    model_config = ConfigDict(extra="allow")

    MMSI: int = Field(gt=0)
    ShipName: Optional[str] = None
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    time_utc: datetime

    @field_validator("time_utc", mode="before")
    @classmethod
    def _parse_time_utc(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_time_utc(v)
        raise ValueError("time_utc must be a string")


class FeedMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    MessageType: str
    Message: dict[str, Any] = Field(default_factory=dict)
    MetaData: FeedMetaData


def _clean_name(name: Optional[str]) -> Optional[str]:
    # AIS pads names with spaces / '@'
    if name is None:
        return None
    cleaned = name.strip().rstrip("@").strip()
    return cleaned or None


def parse_message(raw: str | bytes) -> PositionRecord:
    try:
        msg = FeedMessage.model_validate(json.loads(raw))
    except (TypeError, ValueError) as exc:
        # ValidationError is a ValueError; JSONDecodeError too
        raise MessageDecodeError(str(exc)) from exc

    meta = msg.MetaData
    record = PositionRecord(
        mmsi=meta.MMSI,
        message_type=msg.MessageType,
        message=msg.Message,
        metadata=PositionMetadata(
            mmsi=meta.MMSI,
            ship_name=_clean_name(meta.ShipName),
            latitude=meta.latitude,
            longitude=meta.longitude,
            time_utc=meta.time_utc,
        ),
        # GeoJSON order: longitude first
        geojson=GeoPoint(coordinates=[meta.longitude, meta.latitude]),
    )
    try:
        record.report()
    except ValidationError as exc:
        raise MessageDecodeError(f"malformed {msg.MessageType} payload: {exc}") from exc
    return record
