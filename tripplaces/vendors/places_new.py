"""Client utilities for the Google Places API (New)."""

import logging
from typing import Any, Dict, Iterable, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://places.googleapis.com/v1"

DEFAULT_TIMEOUT = 10
SEARCH_FIELDS = (
    "id",
    "displayName",
    "formattedAddress",
    "shortFormattedAddress",
    "location",
    "rating",
    "userRatingCount",
    "priceLevel",
    "currentOpeningHours",
    "regularOpeningHours",
    "types",
    "photos",
    "businessStatus",
)
DETAILS_FIELDS = SEARCH_FIELDS + ("nationalPhoneNumber", "websiteUri", "googleMapsUri")


class PlacesNewError(RuntimeError):
    """Raised when the Places API (New) answers with a non-2xx status."""

    def __init__(self, status_code: int, payload: Optional[Dict[str, Any]] = None) -> None:
        error = (payload or {}).get("error") or {}
        super().__init__(error.get("message") or f"HTTP {status_code}")
        self.status_code = status_code
        self.payload = payload or {}


def field_mask(fields: Iterable[str], prefix: str = "") -> str:
    return ",".join(f"{prefix}{name}" for name in fields)


def _headers(api_key: str, mask: Optional[str]) -> Dict[str, str]:
    headers = {"X-Goog-Api-Key": api_key, "Content-Type": "application/json"}
    if mask:
        headers["X-Goog-FieldMask"] = mask
    return headers


def _handle(response: requests.Response, operation: str) -> Dict[str, Any]:
    if response.status_code >= 400:
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        error = payload.get("error") or {}
        logger.error(
            "%s failed: http_status=%s, status=%s, message=%s",
            operation,
            response.status_code,
            error.get("status"),
            error.get("message"),
        )
        raise PlacesNewError(response.status_code, payload)
    if not response.content:
        return {}
    return response.json()


def search_nearby(body: Dict[str, Any], api_key: str, fields: Iterable[str] = SEARCH_FIELDS, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    response = _SESSION.post(
        f"{_BASE_URL}/places:searchNearby",
        json=body,
        headers=_headers(api_key, field_mask(fields, "places.")),
        timeout=timeout,
    )
    return _handle(response, "searchNearby")


def search_text(body: Dict[str, Any], api_key: str, fields: Iterable[str] = SEARCH_FIELDS, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    mask = field_mask(fields, "places.") + ",nextPageToken"
    response = _SESSION.post(
        f"{_BASE_URL}/places:searchText",
        json=body,
        headers=_headers(api_key, mask),
        timeout=timeout,
    )
    return _handle(response, "searchText")


def autocomplete(body: Dict[str, Any], api_key: str, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    response = _SESSION.post(
        f"{_BASE_URL}/places:autocomplete",
        json=body,
        headers=_headers(api_key, None),
        timeout=timeout,
    )
    return _handle(response, "autocomplete")


def get_place(
    place_id: str,
    api_key: str,
    fields: Iterable[str] = DETAILS_FIELDS,
    language: Optional[str] = None,
    region: Optional[str] = None,
    session_token: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    if language:
        params["languageCode"] = language
    if region:
        params["regionCode"] = region
    if session_token:
        params["sessionToken"] = session_token
    response = _SESSION.get(
        f"{_BASE_URL}/places/{place_id}",
        params=params,
        headers=_headers(api_key, field_mask(fields)),
        timeout=timeout,
    )
    return _handle(response, "getPlace")
