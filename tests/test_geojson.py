import json
from datetime import datetime, timezone

import pytest

from aiswatch.services.geojson import (
    BoundingBox,
    dumps,
    feature_collection,
    feature_from_document,
)
from ingester.normalizer import parse_message
from tests.conftest import feed_message


def _doc(**kw):
    return parse_message(feed_message(**kw)).to_document()


def test_bounding_box_normalizes_corner_order():
    box = BoundingBox.from_corners([[-70.0, 42.0], [-72.0, 40.0]])
    assert box == BoundingBox(lon_min=-72.0, lat_min=40.0, lon_max=-70.0, lat_max=42.0)
    assert box.contains(-71.0, 41.0)
    assert box.contains(-72.0, 42.0)
    assert not box.contains(-71.0, 42.01)


def test_feature_keeps_coordinates_unchanged():
    feature = feature_from_document(_doc(lat=41.5, lon=-71.0))
    assert feature["type"] == "Feature"
    assert feature["geometry"] == {"type": "Point", "coordinates": [-71.0, 41.5]}


def test_feature_properties():
    ts = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    feature = feature_from_document(_doc(mmsi=367000001, heading=270, ts=ts))
    assert feature["properties"] == {
        "mmsi": 367000001,
        "shipName": "NORDIC STAR",
        "heading": 270,
        "timeUtc": ts,
    }


def test_heading_not_available_is_forwarded():
    feature = feature_from_document(_doc(heading=511))
    assert feature["properties"]["heading"] == 511


def test_heading_read_from_class_b_report():
    feature = feature_from_document(_doc(message_type="StandardClassBPositionReport", heading=12))
    assert feature["properties"]["heading"] == 12


@pytest.mark.parametrize(
    "geojson",
    [
        None,
        "POINT(-71 41)",
        {"type": "Point"},
        {"type": "Point", "coordinates": [-71.0]},
        {"type": "Point", "coordinates": ["-71", "41"]},
        {"type": "Point", "coordinates": [True, 41.0]},
    ],
)
def test_malformed_geometry_is_skipped(geojson):
    doc = _doc()
    doc["geojson"] = geojson
    assert feature_from_document(doc) is None


def test_feature_collection_drops_bad_documents():
    good = _doc(mmsi=1)
    bad = _doc(mmsi=2)
    del bad["geojson"]

    collection = feature_collection([good, bad])

    assert collection["type"] == "FeatureCollection"
    assert [f["properties"]["mmsi"] for f in collection["features"]] == [1]


def test_dumps_serializes_datetimes_as_iso():
    ts = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
    assert json.loads(dumps({"timeUtc": ts})) == {"timeUtc": "2024-05-01T10:00:00+00:00"}
