import pytest

from tripplaces.vendors import google_places


class DummyResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise RuntimeError("http error")

    def json(self):
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        return self.response


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(google_places, "_SESSION", session)
    return session


def test_text_search_success(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "results": []})
    payload = google_places.text_search(
        "coffee", "key", location={"lat": 35.6, "lng": 139.7}, radius=2000, opennow=True, place_type="cafe"
    )
    assert payload["status"] == "OK"
    url, params, timeout = patch_session.calls[0]
    assert "textsearch" in url
    assert params["query"] == "coffee"
    assert params["location"] == "35.6,139.7"
    assert params["radius"] == 2000
    assert params["opennow"] == "true"
    assert params["type"] == "cafe"
    assert timeout == 10


def test_text_search_zero_results_is_not_an_error(patch_session):
    patch_session.response = DummyResponse(payload={"status": "ZERO_RESULTS", "results": []})
    payload = google_places.text_search("zzzzzznoresults", "key")
    assert payload["results"] == []


def test_text_search_error_status(patch_session):
    patch_session.response = DummyResponse(payload={"status": "INVALID_REQUEST", "error_message": "bad"})
    with pytest.raises(google_places.GooglePlacesError) as excinfo:
        google_places.text_search("pizza", "key")
    assert excinfo.value.status == "INVALID_REQUEST"
    assert excinfo.value.error_message == "bad"


def test_nearby_search_with_page_token_sends_only_token(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "results": []})
    google_places.nearby_search({"lat": 1, "lng": 2}, 500, "key", place_type="bar", pagetoken="next")
    _, params, _ = patch_session.calls[0]
    assert params == {"pagetoken": "next", "key": "key"}


def test_nearby_search_builds_filters(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "results": []})
    google_places.nearby_search({"lat": 1.5, "lng": 2.5}, 1234.7, "key", place_type="bar", keyword="rooftop", opennow=True)
    url, params, _ = patch_session.calls[0]
    assert "nearbysearch" in url
    assert params["location"] == "1.5,2.5"
    assert params["radius"] == 1234
    assert params["keyword"] == "rooftop"
    assert params["opennow"] == "true"


def test_autocomplete_params(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "predictions": []})
    google_places.autocomplete(
        "tok",
        "key",
        types=["establishment", "geocode"],
        country="US",
        bounds={"south": 1, "west": 2, "north": 3, "east": 4},
        sessiontoken="s1",
    )
    _, params, _ = patch_session.calls[0]
    assert params["types"] == "establishment|geocode"
    assert params["components"] == "country:us"
    assert params["locationbias"] == "rectangle:1,2|3,4"
    assert params["sessiontoken"] == "s1"


def test_place_details_success(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OK", "result": {"name": "Acme"}})
    result = google_places.place_details("pid", "key", fields=("place_id", "name"))
    assert result["name"] == "Acme"
    _, params, _ = patch_session.calls[0]
    assert params["fields"] == "place_id,name"


def test_place_details_error(patch_session):
    patch_session.response = DummyResponse(payload={"status": "OVER_QUERY_LIMIT", "error_message": "limit"})
    with pytest.raises(google_places.GooglePlacesError):
        google_places.place_details("pid", "key")
