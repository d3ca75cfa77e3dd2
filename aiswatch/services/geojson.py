"""
Geometry helpers shared by the store and the subscriber sessions.

All coordinates here are [longitude, latitude], matching GeoJSON and the
subscriber protocol. Only the upstream feed subscription uses [lat, lon].
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from aiswatch.db.schemas import REPORT_VARIANTS


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box; edges are inclusive."""

    lon_min: float
    lat_min: float
    lon_max: float
    lat_max: float

    @classmethod
    def from_corners(cls, corners: Sequence[Sequence[float]]) -> "BoundingBox":
        """Build from two opposite [lon, lat] corners, given in any order."""
        (lon1, lat1), (lon2, lat2) = corners
        return cls(
            lon_min=min(lon1, lon2),
            lat_min=min(lat1, lat2),
            lon_max=max(lon1, lon2),
            lat_max=max(lat1, lat2),
        )

    def contains(self, lon: float, lat: float) -> bool:
        return self.lon_min <= lon <= self.lon_max and self.lat_min <= lat <= self.lat_max


def point_coordinates(doc: dict[str, Any]) -> Optional[list[float]]:
    """[lon, lat] of a stored document, or None when the geometry is absent or malformed."""
    geometry = doc.get("geojson")
    if not isinstance(geometry, dict):
        return None
    coords = geometry.get("coordinates")
    if not isinstance(coords, (list, tuple)) or len(coords) != 2:
        return None
    lon, lat = coords
    if isinstance(lon, bool) or isinstance(lat, bool):
        return None
    if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
        return None
    return [float(lon), float(lat)]


def _heading(doc: dict[str, Any]) -> Any:
    message_type = doc.get("messageType")
    message = doc.get("message")
    if not isinstance(message_type, str) or not isinstance(message, dict):
        return None
    if message_type not in REPORT_VARIANTS:
        return None
    body = message.get(message_type)
    if not isinstance(body, dict):
        return None
    return body.get("TrueHeading")


def feature_from_document(doc: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Project one stored document to a GeoJSON Feature; None if it has no usable point."""
    coordinates = point_coordinates(doc)
    if coordinates is None:
        return None

    properties: dict[str, Any] = {}
    heading = _heading(doc)
    if heading is not None:
        properties["heading"] = heading

    metadata = doc.get("metadata")
    if isinstance(metadata, dict):
        for key in ("mmsi", "shipName", "timeUtc"):
            if key in metadata:
                properties[key] = metadata[key]

    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": coordinates},
        "properties": properties,
    }


def feature_collection(docs: Iterable[dict[str, Any]]) -> dict[str, Any]:
    features = []
    for doc in docs:
        feature = feature_from_document(doc)
        if feature is not None:
            features.append(feature)
    return {"type": "FeatureCollection", "features": features}


def _default(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(payload: dict[str, Any]) -> str:
    """JSON-serialise a payload; datetime -> ISO string."""
    return json.dumps(payload, default=_default)
