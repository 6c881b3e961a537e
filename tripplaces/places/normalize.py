"""Utilities for transforming Google Places responses into canonical records."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from tripplaces.places.models import LatLng, PhotoRef, PlaceRecord, Prediction
from tripplaces.places.photos import parse_contributor_name

logger = logging.getLogger(__name__)

_PRICE_LEVELS = {
    "PRICE_LEVEL_FREE": 0,
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        value = value.get("text")
    return str(value or "").strip()


def _optional_text(value: Any) -> Optional[str]:
    return _text(value) or None


def _strings(values: Optional[Iterable[Any]]) -> Tuple[str, ...]:
    return tuple(str(v) for v in values or () if v)


def _price_level(value: Any) -> Optional[int]:
    if isinstance(value, str):
        return _PRICE_LEVELS.get(value)
    return _safe_int(value)


def _legacy_photos(photos: Optional[Iterable[Dict[str, Any]]]) -> Tuple[PhotoRef, ...]:
    refs: List[PhotoRef] = []
    for photo in photos or ():
        reference = photo.get("photo_reference")
        if not reference:
            continue
        contributors = [parse_contributor_name(html) for html in photo.get("html_attributions") or ()]
        refs.append(
            PhotoRef(
                reference=reference,
                width=_safe_int(photo.get("width")),
                height=_safe_int(photo.get("height")),
                contributors=tuple(c for c in contributors if c),
                source="legacy",
            )
        )
    return tuple(refs)


def _current_photos(photos: Optional[Iterable[Dict[str, Any]]]) -> Tuple[PhotoRef, ...]:
    refs: List[PhotoRef] = []
    for photo in photos or ():
        name = photo.get("name")
        if not name:
            continue
        contributors = [_text(author.get("displayName")) for author in photo.get("authorAttributions") or ()]
        refs.append(
            PhotoRef(
                reference=name,
                width=_safe_int(photo.get("widthPx")),
                height=_safe_int(photo.get("heightPx")),
                contributors=tuple(c for c in contributors if c),
                source="current",
            )
        )
    return tuple(refs)


def from_legacy_place(result: Dict[str, Any]) -> PlaceRecord:
    location = (result.get("geometry") or {}).get("location") or {}
    hours = result.get("opening_hours")
    open_now = None
    weekday_text: Tuple[str, ...] = ()
    if hours:
        open_now = bool(hours.get("open_now", False))
        weekday_text = _strings(hours.get("weekday_text"))

    return PlaceRecord(
        id=_text(result.get("place_id")),
        name=_text(result.get("name")),
        formatted_address=_text(result.get("formatted_address") or result.get("vicinity")),
        location=LatLng(
            lat=_safe_float(location.get("lat")) or 0.0,
            lng=_safe_float(location.get("lng")) or 0.0,
        ),
        rating=_safe_float(result.get("rating")),
        rating_count=_safe_int(result.get("user_ratings_total")),
        price_level=_price_level(result.get("price_level")),
        open_now=open_now,
        types=_strings(result.get("types")),
        photos=_legacy_photos(result.get("photos")),
        business_status=_optional_text(result.get("business_status")),
        vicinity=_text(result.get("vicinity")),
        phone_number=_optional_text(result.get("formatted_phone_number")),
        website=_optional_text(result.get("website")),
        maps_url=_optional_text(result.get("url")),
        weekday_text=weekday_text,
    )


def from_current_place(place: Dict[str, Any]) -> PlaceRecord:
    location = place.get("location") or {}
    hours = place.get("currentOpeningHours") or place.get("regularOpeningHours")
    open_now = None
    weekday_text: Tuple[str, ...] = ()
    if hours:
        open_now = bool(hours.get("openNow", False))
        weekday_text = _strings(hours.get("weekdayDescriptions"))

    return PlaceRecord(
        id=_text(place.get("id")),
        name=_text(place.get("displayName")),
        formatted_address=_text(place.get("formattedAddress")),
        location=LatLng(
            lat=_safe_float(location.get("latitude")) or 0.0,
            lng=_safe_float(location.get("longitude")) or 0.0,
        ),
        rating=_safe_float(place.get("rating")),
        rating_count=_safe_int(place.get("userRatingCount")),
        price_level=_price_level(place.get("priceLevel")),
        open_now=open_now,
        types=_strings(place.get("types")),
        photos=_current_photos(place.get("photos")),
        business_status=_optional_text(place.get("businessStatus")),
        vicinity=_text(place.get("shortFormattedAddress") or place.get("formattedAddress")),
        phone_number=_optional_text(place.get("nationalPhoneNumber")),
        website=_optional_text(place.get("websiteUri")),
        maps_url=_optional_text(place.get("googleMapsUri")),
        weekday_text=weekday_text,
    )


def from_legacy_prediction(prediction: Dict[str, Any]) -> Prediction:
    formatting = prediction.get("structured_formatting") or {}
    matches = tuple(
        (int(match.get("offset", 0)), int(match.get("length", 0)))
        for match in prediction.get("matched_substrings") or ()
    )
    return Prediction(
        place_id=_text(prediction.get("place_id")),
        description=_text(prediction.get("description")),
        main_text=_text(formatting.get("main_text")),
        secondary_text=_text(formatting.get("secondary_text")),
        types=_strings(prediction.get("types")),
        matched_substrings=matches,
    )


def from_current_suggestion(suggestion: Dict[str, Any]) -> Optional[Prediction]:
    """Convert a ``placePrediction`` suggestion; query predictions carry no place and are skipped."""
    prediction = suggestion.get("placePrediction")
    if not prediction:
        return None
    text = prediction.get("text") or {}
    structured = prediction.get("structuredFormat") or {}
    matches = []
    for match in text.get("matches") or ():
        start = int(match.get("startOffset", 0))
        end = int(match.get("endOffset", start))
        matches.append((start, end - start))
    return Prediction(
        place_id=_text(prediction.get("placeId")),
        description=_text(text),
        main_text=_text(structured.get("mainText")),
        secondary_text=_text(structured.get("secondaryText")),
        types=_strings(prediction.get("types")),
        matched_substrings=tuple(matches),
    )


def matches_keyword(record: PlaceRecord, keyword: Optional[str]) -> bool:
    if not keyword:
        return True
    needle = keyword.strip().lower()
    return needle in record.name.lower() or needle in record.formatted_address.lower()
