import pytest

from tourguide.config.settings import get_settings
from tourguide.core.errors import CatalogIngestionError, ValidationError
from tourguide.ingestion.stb_client import StbClient, transform_feature


def _settings(api_key=None):
    settings = get_settings()
    stb = settings.ingestion.stb.model_copy(update={"api_key": api_key, "base_url": "https://stb.test/"})
    ingestion = settings.ingestion.model_copy(update={"stb": stb})
    return settings.model_copy(update={"ingestion": ingestion})


FEATURE = {
    "type": "Feature",
    "geometry": {"type": "Point", "coordinates": [103.8448, 1.2831]},
    "properties": {
        "UUID": "abc-1",
        "NAME": "Chinatown Heritage Centre",
        "DESCRIPTION": "Historic quarter",
        "CATEGORY": "Cultural",
        "ADDRESSBLOCKHOUSENUMBER": "48",
        "ADDRESSSTREETNAME": "Pagoda St",
        "ADDRESSPOSTALCODE": "059207",
        "RATING": 4.1,
        "OFFICIALWEBSITE": "https://example.test",
    },
}


def test_transform_feature_flattens_properties_and_swaps_coordinate_order():
    record = transform_feature(FEATURE)

    assert record["source_id"] == "abc-1"
    assert record["latitude"] == 1.2831
    assert record["longitude"] == 103.8448
    assert record["address"] == "48, Pagoda St, 059207"
    assert record["rating"] == 4.1


def test_transform_feature_fills_defaults():
    record = transform_feature({"geometry": {"coordinates": [103.8, 1.3]}, "properties": {"NAME": "X"}})

    assert record["description"] == "A popular attraction in Singapore"
    assert record["category"] == "General"
    assert record["address"] == "Singapore"


def test_search_sends_params_and_bearer_key(monkeypatch):
    seen = {}

    def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):
        seen.update(url=url, params=params, headers=headers)
        return {"features": [FEATURE, {"properties": {"NAME": "No geometry"}}, "junk"]}

    monkeypatch.setattr("tourguide.ingestion.stb_client.get_json", fake_get_json)

    records = StbClient(_settings(api_key="secret")).search(1.3, 103.85, category="Cultural", radius_m=3000, limit=5)

    assert [r["name"] for r in records] == ["Chinatown Heritage Centre"]
    assert seen["url"] == "https://stb.test/attractions/search"
    assert seen["params"] == {"lat": 1.3, "lng": 103.85, "radius": 3000, "limit": 5, "category": "Cultural"}
    assert seen["headers"]["Authorization"] == "Bearer secret"


def test_search_without_key_sends_no_authorization(monkeypatch):
    seen = {}

    def fake_get_json(url, *, params=None, headers=None, timeout_seconds=15):
        seen["headers"] = headers
        return {"features": []}

    monkeypatch.setattr("tourguide.ingestion.stb_client.get_json", fake_get_json)

    assert StbClient(_settings()).search(1.3, 103.85) == []
    assert "Authorization" not in seen["headers"]


def test_search_rejects_centre_outside_region(monkeypatch):
    monkeypatch.setattr(
        "tourguide.ingestion.stb_client.get_json",
        lambda *_a, **_k: pytest.fail("should not call the API"),
    )
    with pytest.raises(ValidationError):
        StbClient(_settings()).search(10.0, 103.8)


def test_search_rejects_payload_without_features(monkeypatch):
    monkeypatch.setattr("tourguide.ingestion.stb_client.get_json", lambda *_a, **_k: {"error": "nope"})
    with pytest.raises(CatalogIngestionError):
        StbClient(_settings()).search(1.3, 103.85)
