import asyncio
import json

import pytest
from shapely.geometry import Point, Polygon

from domain.errors import LoadFailure
from domain.models import FeatureSourceHandle, SourceDescriptor
from services import feature_source as fs


def _geojson_feature(name, x=-118.5, y=34.0):
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [x, y]},
        "properties": {"NAME": name},
    }


@pytest.fixture
def handle():
    return FeatureSourceHandle(
        descriptor=SourceDescriptor(
            name="access_points",
            url="https://example.test/AccessPoints/FeatureServer/0/",
            where="COUNTY IN ('Orange')",
        )
    )


def test_combine_where():
    assert fs.combine_where(None, "") == "1=1"
    assert fs.combine_where("A = 1", None) == "A = 1"
    assert fs.combine_where("A = 1", "B = 2") == "(A = 1) AND (B = 2)"


def test_load_reads_layer_metadata(monkeypatch):
    calls = []

    def fake_request_json(method, url, *, source, params=None, data=None, timeout=None):
        calls.append((method, url, params))
        return {
            "name": "AccessPoints",
            "geometryType": "esriGeometryPoint",
            "maxRecordCount": 2000,
            "fields": [{"name": "OBJECTID"}, {"name": "COUNTY"}],
        }

    monkeypatch.setattr(fs, "request_json", fake_request_json)
    descriptor = SourceDescriptor(name="access_points", url="https://example.test/layer/0/")
    handle = asyncio.run(fs.FeatureSourceClient().load(descriptor))

    assert calls[0] == ("GET", "https://example.test/layer/0", {"f": "json"})
    assert handle.layer_name == "AccessPoints"
    assert handle.geometry_type == "esriGeometryPoint"
    assert handle.max_record_count == 2000
    assert handle.fields == ("OBJECTID", "COUNTY")


def test_query_features_pages_until_transfer_limit_clears(monkeypatch, handle):
    pages = [
        {"features": [_geojson_feature("a"), _geojson_feature("b")], "exceededTransferLimit": True},
        {"features": [_geojson_feature("c")], "properties": {"exceededTransferLimit": False}},
    ]
    sent = []

    def fake_request_json(method, url, *, source, params=None, data=None, timeout=None):
        sent.append((method, url, dict(data)))
        return pages[len(sent) - 1]

    monkeypatch.setattr(fs, "request_json", fake_request_json)
    features = fs.FeatureSourceClient().query_features_sync(handle)

    assert [f.attributes["NAME"] for f in features] == ["a", "b", "c"]
    assert isinstance(features[0].geometry, Point)
    assert sent[0][0] == "POST"
    assert sent[0][1] == "https://example.test/AccessPoints/FeatureServer/0/query"
    assert "resultOffset" not in sent[0][2]
    assert sent[1][2]["resultOffset"] == "2"
    assert sent[0][2]["where"] == "COUNTY IN ('Orange')"
    assert sent[0][2]["f"] == "geojson"


def test_query_features_with_spatial_filter(monkeypatch, handle):
    sent = {}

    def fake_request_json(method, url, *, source, params=None, data=None, timeout=None):
        sent.update(data)
        return {"features": []}

    monkeypatch.setattr(fs, "request_json", fake_request_json)
    polygon = Polygon([(-118.5, 33.5), (-118.4, 33.5), (-118.4, 33.6), (-118.5, 33.6)])
    result = fs.FeatureSourceClient().query_features_sync(
        handle, where="POP > 0", geometry=polygon, spatial_relationship="intersects"
    )

    assert result == []
    assert sent["where"] == "(COUNTY IN ('Orange')) AND (POP > 0)"
    assert sent["geometryType"] == "esriGeometryPolygon"
    assert sent["spatialRel"] == "esriSpatialRelIntersects"
    assert sent["inSR"] == "4326"
    assert "rings" in json.loads(sent["geometry"])
    assert sent["outFields"] == "*"
    assert sent["returnGeometry"] == "true"


def test_query_features_rejects_unknown_relationship(handle):
    with pytest.raises(ValueError):
        fs.FeatureSourceClient().query_features_sync(
            handle, geometry=Point(0, 0), spatial_relationship="near"
        )


def test_query_features_missing_features_is_load_failure(monkeypatch, handle):
    monkeypatch.setattr(fs, "request_json", lambda *a, **k: {"type": "FeatureCollection"})
    with pytest.raises(LoadFailure):
        fs.FeatureSourceClient().query_features_sync(handle)


def test_query_features_propagates_service_errors(monkeypatch, handle):
    def boom(*args, **kwargs):
        raise LoadFailure("access_points", "Invalid token", status_code=498)

    monkeypatch.setattr(fs, "request_json", boom)
    with pytest.raises(LoadFailure) as excinfo:
        asyncio.run(fs.FeatureSourceClient().query_features(handle))
    assert excinfo.value.status_code == 498
