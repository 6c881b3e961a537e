"""Client utilities for the legacy Google Places web service."""

import logging
from typing import Any, Dict, Iterable, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"

DEFAULT_TIMEOUT = 10
DETAILS_FIELDS = (
    "place_id",
    "name",
    "formatted_address",
    "geometry",
    "rating",
    "user_ratings_total",
    "price_level",
    "opening_hours",
    "types",
    "photos",
    "business_status",
    "vicinity",
    "formatted_phone_number",
    "website",
    "url",
)


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful status."""

    def __init__(self, status: Optional[str], error_message: Optional[str] = None) -> None:
        super().__init__(error_message or status or "unknown status")
        self.status = status
        self.error_message = error_message


def _get(endpoint: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    response = _SESSION.get(f"{_BASE_URL}/{endpoint}/json", params=params, timeout=timeout)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status not in {"OK", "ZERO_RESULTS"}:
        logger.error("%s failed: status=%s, error_message=%s", endpoint, status, payload.get("error_message"))
        raise GooglePlacesError(status, payload.get("error_message"))
    return payload


def _latlng(lat: float, lng: float) -> str:
    return f"{lat},{lng}"


def text_search(
    query: str,
    api_key: str,
    pagetoken: Optional[str] = None,
    location: Optional[Dict[str, float]] = None,
    radius: Optional[float] = None,
    opennow: bool = False,
    place_type: Optional[str] = None,
    language: Optional[str] = None,
    region: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"query": query, "key": api_key}
    if pagetoken:
        params["pagetoken"] = pagetoken
    if location:
        params["location"] = _latlng(location["lat"], location["lng"])
        if radius:
            params["radius"] = int(radius)
    if opennow:
        params["opennow"] = "true"
    if place_type:
        params["type"] = place_type
    if language:
        params["language"] = language
    if region:
        params["region"] = region
    return _get("textsearch", params, timeout)


def nearby_search(
    location: Dict[str, float],
    radius: float,
    api_key: str,
    place_type: Optional[str] = None,
    keyword: Optional[str] = None,
    opennow: bool = False,
    pagetoken: Optional[str] = None,
    language: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    if pagetoken:
        # the token encodes every other parameter
        params: Dict[str, Any] = {"pagetoken": pagetoken, "key": api_key}
        return _get("nearbysearch", params, timeout)

    params = {
        "location": _latlng(location["lat"], location["lng"]),
        "radius": int(radius),
        "key": api_key,
    }
    if place_type:
        params["type"] = place_type
    if keyword:
        params["keyword"] = keyword
    if opennow:
        params["opennow"] = "true"
    if language:
        params["language"] = language
    return _get("nearbysearch", params, timeout)


def autocomplete(
    text: str,
    api_key: str,
    types: Iterable[str] = (),
    country: Optional[str] = None,
    bounds: Optional[Dict[str, float]] = None,
    sessiontoken: Optional[str] = None,
    language: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"input": text, "key": api_key}
    types = [t for t in types if t]
    if types:
        params["types"] = "|".join(types)
    if country:
        params["components"] = f"country:{country.lower()}"
    if bounds:
        params["locationbias"] = "rectangle:{south},{west}|{north},{east}".format(**bounds)
    if sessiontoken:
        params["sessiontoken"] = sessiontoken
    if language:
        params["language"] = language
    return _get("autocomplete", params, timeout)


def place_details(
    place_id: str,
    api_key: str,
    fields: Iterable[str] = DETAILS_FIELDS,
    sessiontoken: Optional[str] = None,
    language: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"place_id": place_id, "key": api_key, "fields": ",".join(fields)}
    if sessiontoken:
        params["sessiontoken"] = sessiontoken
    if language:
        params["language"] = language
    payload = _get("details", params, timeout)
    return payload.get("result", {})
