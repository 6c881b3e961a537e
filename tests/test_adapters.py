import dataclasses

import pytest

from tripplaces.places.adapters import (
    MAX_RADIUS_M,
    AdapterSelector,
    CurrentAdapter,
    LegacyAdapter,
    build_location_restriction,
    search_radius,
)
from tripplaces.places.debounce import CancellationToken
from tripplaces.places.errors import ErrorKind, PlacesApiError
from tripplaces.places.models import (
    AutocompleteOptions,
    BoundingBox,
    LatLng,
    NearbySearchOptions,
    TextSearchOptions,
)
from tripplaces.vendors import google_places, places_new

TOKYO = BoundingBox(south=35.68, west=139.69, north=35.70, east=139.71)


def _legacy_result(place_id, lat, lng, open_now=True, name=None):
    return {
        "place_id": place_id,
        "name": name or place_id,
        "geometry": {"location": {"lat": lat, "lng": lng}},
        "opening_hours": {"open_now": open_now},
    }


def _current_place(place_id, lat, lng, open_now=True, name=None):
    return {
        "id": place_id,
        "displayName": {"text": name or place_id},
        "location": {"latitude": lat, "longitude": lng},
        "currentOpeningHours": {"openNow": open_now},
    }


def _service_disabled():
    return places_new.PlacesNewError(
        403,
        {"error": {"code": 403, "status": "PERMISSION_DENIED", "details": [{"reason": "SERVICE_DISABLED"}]}},
    )


# ---------- Location helpers ----------


def test_search_radius_defaults_and_cap():
    assert search_radius(None) == 5000.0
    assert search_radius(BoundingBox(-10, -10, 10, 10)) == MAX_RADIUS_M
    assert 1000 < search_radius(TOKYO) < 2000


def test_location_restriction_uses_rectangle_inside_viewport():
    restriction = build_location_restriction(NearbySearchOptions(viewport=TOKYO))
    assert restriction == {
        "rectangle": {
            "low": {"latitude": 35.68, "longitude": 139.69},
            "high": {"latitude": 35.70, "longitude": 139.71},
        }
    }


def test_location_restriction_uses_capped_circle_outside_viewport():
    viewport = BoundingBox(-20, -20, 20, 20)
    restriction = build_location_restriction(NearbySearchOptions(viewport=viewport, within_viewport=False))
    assert restriction["circle"]["radius"] == MAX_RADIUS_M
    assert restriction["circle"]["center"] == {"latitude": 0.0, "longitude": 0.0}


def test_location_restriction_uses_fallback_center():
    restriction = build_location_restriction(NearbySearchOptions(center_fallback=LatLng(1.0, 2.0)))
    assert restriction == {"circle": {"center": {"latitude": 1.0, "longitude": 2.0}, "radius": 5000.0}}


def test_location_restriction_without_location():
    with pytest.raises(PlacesApiError) as excinfo:
        build_location_restriction(NearbySearchOptions())
    assert excinfo.value.kind is ErrorKind.INVALID_REQUEST


# ---------- CurrentAdapter ----------


def test_current_nearby_builds_body_and_post_filters(settings, monkeypatch):
    calls = []

    def fake_search_nearby(body, api_key, timeout):
        calls.append(body)
        return {
            "places": [
                _current_place("open-rooftop", 35.69, 139.70, True, "Rooftop Bar"),
                _current_place("closed-rooftop", 35.69, 139.70, False, "Rooftop Lounge"),
                _current_place("open-cellar", 35.69, 139.70, True, "Cellar Bar"),
            ]
        }

    monkeypatch.setattr(places_new, "search_nearby", fake_search_nearby)
    options = NearbySearchOptions(viewport=TOKYO, category="groceries", open_now=True, keyword="rooftop", max_results=50)

    result = CurrentAdapter(settings).search_nearby(options, CancellationToken("req_1"))

    body = calls[0]
    assert "rectangle" in body["locationRestriction"]
    assert body["maxResultCount"] == 20
    assert body["includedPrimaryTypes"] == ["grocery_store"]
    assert [p.id for p in result.items] == ["open-rooftop"]
    assert result.has_more is False
    assert result.next_page_token is None
    assert result.request_id == "req_1"


def test_current_text_search_forwards_page_token(settings, monkeypatch):
    calls = []

    def fake_search_text(body, api_key, timeout):
        calls.append(body)
        return {"places": [_current_place("p1", 1, 2)], "nextPageToken": "page-2"}

    monkeypatch.setattr(places_new, "search_text", fake_search_text)
    options = TextSearchOptions(query="coffee", location=LatLng(1, 2), radius_m=90000, open_now=True, category="cafes")

    result = CurrentAdapter(settings).search_text(options, CancellationToken("req_2"))

    body = calls[0]
    assert body["textQuery"] == "coffee"
    assert body["locationBias"]["circle"]["radius"] == MAX_RADIUS_M
    assert body["openNow"] is True
    assert body["includedType"] == "cafe"
    assert result.has_more is True
    assert result.next_page_token == "page-2"


def test_current_autocomplete_drops_legacy_type_collections(settings, monkeypatch):
    calls = []

    def fake_autocomplete(body, api_key, timeout):
        calls.append(body)
        return {
            "suggestions": [
                {"placePrediction": {"placeId": "p1", "text": {"text": "Tokyo Tower"}}},
                {"queryPrediction": {"text": {"text": "tokyo tower tickets"}}},
            ]
        }

    monkeypatch.setattr(places_new, "autocomplete", fake_autocomplete)
    options = AutocompleteOptions(viewport=TOKYO, types=("establishment", "geocode"), country="JP", session_token="s1")

    predictions = CurrentAdapter(settings).autocomplete("tokyo t", options, CancellationToken())

    body = calls[0]
    assert "includedPrimaryTypes" not in body
    assert body["includedRegionCodes"] == ["jp"]
    assert body["sessionToken"] == "s1"
    assert [p.place_id for p in predictions] == ["p1"]


def test_current_details_maps_field_names(settings, monkeypatch):
    calls = []

    def fake_get_place(place_id, api_key, fields, language, region, timeout):
        calls.append(fields)
        return _current_place(place_id, 1, 2)

    monkeypatch.setattr(places_new, "get_place", fake_get_place)

    record = CurrentAdapter(settings).details("p1", ("name", "geometry", "opening_hours", "bogus"), CancellationToken())

    assert record.id == "p1"
    assert calls[0] == ["id", "displayName", "location", "currentOpeningHours", "regularOpeningHours"]


def test_current_http_errors_are_mapped(settings, monkeypatch):
    def fake_search_text(body, api_key, timeout):
        raise places_new.PlacesNewError(400, {"error": {"status": "INVALID_ARGUMENT", "message": "bad"}})

    monkeypatch.setattr(places_new, "search_text", fake_search_text)

    with pytest.raises(PlacesApiError) as excinfo:
        CurrentAdapter(settings).search_text(TextSearchOptions(query="x"), CancellationToken("req_3"))
    assert excinfo.value.kind is ErrorKind.INVALID_REQUEST
    assert excinfo.value.request_id == "req_3"


def test_current_availability(settings):
    adapter = CurrentAdapter(settings)
    assert adapter.is_available()
    adapter.mark_unavailable()
    assert not adapter.is_available()
    assert not CurrentAdapter(dataclasses.replace(settings, use_new_places_api=False)).is_available()
    assert not CurrentAdapter(dataclasses.replace(settings, google_api_key="")).is_available()


# ---------- LegacyAdapter ----------


def test_legacy_nearby_filters_to_viewport(settings, monkeypatch):
    calls = []

    def fake_nearby_search(**kwargs):
        calls.append(kwargs)
        return {
            "status": "OK",
            "results": [_legacy_result("inside", 35.69, 139.70), _legacy_result("outside", 36.5, 140.0)],
            "next_page_token": "next",
        }

    monkeypatch.setattr(google_places, "nearby_search", fake_nearby_search)
    options = NearbySearchOptions(viewport=TOKYO, category="bars", open_now=True, keyword="sake")

    result = LegacyAdapter(settings).search_nearby(options, CancellationToken("req_4"))

    assert [p.id for p in result.items] == ["inside"]
    assert result.has_more is True
    assert result.next_page_token == "next"
    assert calls[0]["place_type"] == "bar"
    assert calls[0]["keyword"] == "sake"
    assert calls[0]["opennow"] is True
    assert calls[0]["location"] == {"lat": pytest.approx(35.69), "lng": pytest.approx(139.70)}


def test_legacy_zero_results(settings, monkeypatch):
    monkeypatch.setattr(google_places, "text_search", lambda **kwargs: {"status": "ZERO_RESULTS", "results": []})

    result = LegacyAdapter(settings).search_text(TextSearchOptions(query="zzzzzznoresults"), CancellationToken())

    assert result.items == ()
    assert result.has_more is False


def test_legacy_status_errors_are_mapped(settings, monkeypatch):
    def fake_text_search(**kwargs):
        raise google_places.GooglePlacesError("REQUEST_DENIED", "The provided API key is invalid.")

    monkeypatch.setattr(google_places, "text_search", fake_text_search)

    with pytest.raises(PlacesApiError) as excinfo:
        LegacyAdapter(settings).search_text(TextSearchOptions(query="x"), CancellationToken())
    assert excinfo.value.kind is ErrorKind.INVALID_CREDENTIALS


def test_legacy_empty_details_is_invalid_request(settings, monkeypatch):
    monkeypatch.setattr(google_places, "place_details", lambda **kwargs: {})
    with pytest.raises(PlacesApiError) as excinfo:
        LegacyAdapter(settings).details("missing", ("name",), CancellationToken())
    assert excinfo.value.kind is ErrorKind.INVALID_REQUEST


def test_missing_api_key(settings):
    adapter = LegacyAdapter(dataclasses.replace(settings, google_api_key=""))
    with pytest.raises(PlacesApiError) as excinfo:
        adapter.search_text(TextSearchOptions(query="coffee"), CancellationToken())
    assert excinfo.value.kind is ErrorKind.MISSING_CREDENTIALS


def test_unknown_category_is_invalid_request(settings, monkeypatch):
    monkeypatch.setattr(google_places, "nearby_search", lambda **kwargs: pytest.fail("should not be called"))
    with pytest.raises(PlacesApiError) as excinfo:
        LegacyAdapter(settings).search_nearby(NearbySearchOptions(viewport=TOKYO, category="spas"), CancellationToken())
    assert excinfo.value.kind is ErrorKind.INVALID_REQUEST


def test_cancelled_token_skips_provider_call(settings, monkeypatch):
    monkeypatch.setattr(google_places, "text_search", lambda **kwargs: pytest.fail("should not be called"))
    token = CancellationToken("req_5")
    token.cancel()
    with pytest.raises(PlacesApiError) as excinfo:
        LegacyAdapter(settings).search_text(TextSearchOptions(query="coffee"), token)
    assert excinfo.value.kind is ErrorKind.CANCELLED


# ---------- Quota retry ----------


def test_text_search_retries_once_after_quota_error(settings, monkeypatch):
    responses = [
        google_places.GooglePlacesError("OVER_QUERY_LIMIT", "quota"),
        {"status": "OK", "results": [_legacy_result("p1", 1, 2)]},
    ]
    calls = []

    def fake_text_search(**kwargs):
        calls.append(kwargs)
        response = responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(google_places, "text_search", fake_text_search)
    sleeps = []
    adapter = LegacyAdapter(dataclasses.replace(settings, quota_retry_delay=1.5), sleep=sleeps.append)

    result = adapter.search_text(TextSearchOptions(query="coffee"), CancellationToken())

    assert [p.id for p in result.items] == ["p1"]
    assert len(calls) == 2
    assert sleeps == [1.5]


def test_text_search_gives_up_after_second_quota_error(settings, monkeypatch):
    calls = []

    def fake_text_search(**kwargs):
        calls.append(kwargs)
        raise google_places.GooglePlacesError("OVER_QUERY_LIMIT", "quota")

    monkeypatch.setattr(google_places, "text_search", fake_text_search)
    adapter = LegacyAdapter(settings, sleep=lambda seconds: None)

    with pytest.raises(PlacesApiError) as excinfo:
        adapter.search_text(TextSearchOptions(query="coffee"), CancellationToken())

    assert excinfo.value.kind is ErrorKind.QUOTA_EXCEEDED
    assert len(calls) == 2


def test_other_errors_are_not_retried(settings, monkeypatch):
    calls = []

    def fake_text_search(**kwargs):
        calls.append(kwargs)
        raise google_places.GooglePlacesError("INVALID_REQUEST", "bad")

    monkeypatch.setattr(google_places, "text_search", fake_text_search)

    with pytest.raises(PlacesApiError):
        LegacyAdapter(settings, sleep=lambda seconds: None).search_text(TextSearchOptions(query="x"), CancellationToken())
    assert len(calls) == 1


# ---------- AdapterSelector ----------


def test_selector_prefers_current(settings):
    selector = AdapterSelector(CurrentAdapter(settings), LegacyAdapter(settings))
    assert selector.active_name == "current"

    legacy_only = dataclasses.replace(settings, use_new_places_api=False)
    assert AdapterSelector(CurrentAdapter(legacy_only), LegacyAdapter(legacy_only)).active_name == "legacy"


def test_selector_falls_back_when_service_disabled(settings, monkeypatch):
    def fake_search_text(body, api_key, timeout):
        raise _service_disabled()

    monkeypatch.setattr(places_new, "search_text", fake_search_text)
    monkeypatch.setattr(
        google_places,
        "text_search",
        lambda **kwargs: {"status": "OK", "results": [_legacy_result("legacy-1", 1, 2)]},
    )
    selector = AdapterSelector(CurrentAdapter(settings), LegacyAdapter(settings))

    result = selector.call("search_text", TextSearchOptions(query="coffee"), token=CancellationToken())

    assert [p.id for p in result.items] == ["legacy-1"]
    assert selector.active_name == "legacy"


def test_selector_does_not_fall_back_on_other_errors(settings, monkeypatch):
    def fake_search_text(body, api_key, timeout):
        raise places_new.PlacesNewError(429, {"error": {"status": "RESOURCE_EXHAUSTED"}})

    monkeypatch.setattr(places_new, "search_text", fake_search_text)
    monkeypatch.setattr(google_places, "text_search", lambda **kwargs: pytest.fail("should not fall back"))
    selector = AdapterSelector(
        CurrentAdapter(settings, sleep=lambda seconds: None), LegacyAdapter(settings)
    )

    with pytest.raises(PlacesApiError) as excinfo:
        selector.call("search_text", TextSearchOptions(query="coffee"), token=CancellationToken())

    assert excinfo.value.kind is ErrorKind.QUOTA_EXCEEDED
    assert selector.active_name == "current"
