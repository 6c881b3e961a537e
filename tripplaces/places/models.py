"""Value objects shared by the places search layer."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from tripplaces.places.errors import ErrorKind, PlacesApiError

EARTH_RADIUS_M = 6_371_000.0

# UI category pill id -> Google place type.
CATEGORY_TYPES: Dict[str, str] = {
    "restaurants": "restaurant",
    "hotels": "lodging",
    "clubs": "night_club",
    "cafes": "cafe",
    "bars": "bar",
    "attractions": "tourist_attraction",
    "groceries": "grocery_or_supermarket",
}


def haversine_meters(a: "LatLng", b: "LatLng") -> float:
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["LatLng"]:
        if not data:
            return None
        return cls(lat=float(data["lat"]), lng=float(data["lng"]))


@dataclass(frozen=True)
class BoundingBox:
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["BoundingBox"]:
        if not data:
            return None
        return cls(
            south=float(data["south"]),
            west=float(data["west"]),
            north=float(data["north"]),
            east=float(data["east"]),
        )

    @property
    def south_west(self) -> LatLng:
        return LatLng(self.south, self.west)

    @property
    def north_east(self) -> LatLng:
        return LatLng(self.north, self.east)

    def center(self) -> LatLng:
        lng_span = self.east - self.west
        if lng_span < 0:
            # crosses the antimeridian
            lng_span += 360
        lng = self.west + lng_span / 2
        if lng > 180:
            lng -= 360
        return LatLng((self.south + self.north) / 2, lng)

    def contains(self, point: LatLng) -> bool:
        if not self.south <= point.lat <= self.north:
            return False
        if self.west <= self.east:
            return self.west <= point.lng <= self.east
        return point.lng >= self.west or point.lng <= self.east

    def diagonal_meters(self) -> float:
        return haversine_meters(self.south_west, self.north_east)

    def approximate_zoom(self) -> int:
        """Estimate the web-mercator zoom level that shows this box on a 256px tile."""
        lng_span = self.east - self.west
        if lng_span == 0:
            return 21
        if lng_span < 0:
            lng_span += 360
        return max(0, min(21, int(round(math.log2(360.0 / lng_span)))))


@dataclass(frozen=True)
class NearbySearchOptions:
    viewport: Optional[BoundingBox] = None
    center_fallback: Optional[LatLng] = None
    category: Optional[str] = None
    open_now: bool = False
    keyword: Optional[str] = None
    within_viewport: bool = True
    max_results: int = 20
    text: Optional[str] = None
    use_text_search: bool = False
    page_token: Optional[str] = None
    zoom: Optional[int] = None


@dataclass(frozen=True)
class TextSearchOptions:
    query: str
    viewport: Optional[BoundingBox] = None
    location: Optional[LatLng] = None
    radius_m: Optional[float] = None
    open_now: bool = False
    category: Optional[str] = None
    page_token: Optional[str] = None
    max_results: int = 20
    zoom: Optional[int] = None


@dataclass(frozen=True)
class AutocompleteOptions:
    viewport: Optional[BoundingBox] = None
    types: Tuple[str, ...] = ("establishment", "geocode")
    country: Optional[str] = "us"
    session_token: Optional[str] = None


@dataclass(frozen=True)
class PhotoRef:
    reference: str
    width: Optional[int] = None
    height: Optional[int] = None
    contributors: Tuple[str, ...] = ()
    source: str = "legacy"


@dataclass(frozen=True)
class PlaceRecord:
    """Canonical place shape produced from either provider response."""

    id: str
    name: str
    formatted_address: str
    location: LatLng
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    price_level: Optional[int] = None
    open_now: Optional[bool] = None
    types: Tuple[str, ...] = ()
    photos: Tuple[PhotoRef, ...] = ()
    business_status: Optional[str] = None
    vicinity: str = ""
    phone_number: Optional[str] = None
    website: Optional[str] = None
    maps_url: Optional[str] = None
    weekday_text: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Prediction:
    place_id: str
    description: str
    main_text: str
    secondary_text: str
    types: Tuple[str, ...] = ()
    matched_substrings: Tuple[Tuple[int, int], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SearchResult:
    items: Tuple[PlaceRecord, ...]
    has_more: bool
    request_id: str
    elapsed_ms: float
    source_query: Any = field(default=None, repr=False)
    next_page_token: Optional[str] = None
    from_cache: bool = False
    origin_request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "has_more": self.has_more,
            "next_page_token": self.next_page_token,
            "request_id": self.request_id,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "from_cache": self.from_cache,
            "origin_request_id": self.origin_request_id,
        }


@dataclass(frozen=True)
class AutocompleteResult:
    predictions: Tuple[Prediction, ...]
    request_id: str
    elapsed_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictions": [p.to_dict() for p in self.predictions],
            "request_id": self.request_id,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


@dataclass(frozen=True)
class DetailsResult:
    place: PlaceRecord
    request_id: str
    elapsed_ms: float
    from_cache: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "place": self.place.to_dict(),
            "request_id": self.request_id,
            "elapsed_ms": round(self.elapsed_ms, 2),
            "from_cache": self.from_cache,
        }


@dataclass(frozen=True)
class MetricsSnapshot:
    total: int
    succeeded: int
    failed: int
    average_response_ms: float
    quota_usage: Dict[str, int]
    samples: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def resolve_category(category: Optional[str]) -> Optional[str]:
    """Return the Google place type for a category pill id (``None`` passes through)."""
    if not category:
        return None
    place_type = CATEGORY_TYPES.get(category)
    if place_type is None:
        raise PlacesApiError(ErrorKind.INVALID_REQUEST, f"Unknown category: {category}")
    return place_type


def search_center(viewport: Optional[BoundingBox], fallback: Optional[LatLng]) -> Optional[LatLng]:
    if viewport is not None:
        return viewport.center()
    return fallback
