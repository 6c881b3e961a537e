"""Provider adapters: one canonical search interface over the two Google Places back ends.

``CurrentAdapter`` talks to the Places API (New); ``LegacyAdapter`` talks to the
legacy Places web service. ``AdapterSelector`` decides per call which one
serves the request.
"""

import abc
import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from tripplaces.core.config import Settings
from tripplaces.places.debounce import CancellationToken
from tripplaces.places.errors import (
    ErrorKind,
    PlacesApiError,
    from_http_error,
    from_legacy_status,
    is_service_disabled,
)
from tripplaces.places.models import (
    AutocompleteOptions,
    BoundingBox,
    LatLng,
    NearbySearchOptions,
    PlaceRecord,
    Prediction,
    SearchResult,
    TextSearchOptions,
    resolve_category,
    search_center,
)
from tripplaces.places.normalize import (
    from_current_place,
    from_current_suggestion,
    from_legacy_place,
    from_legacy_prediction,
    matches_keyword,
)
from tripplaces.vendors import google_places, places_new

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_M = 5000.0
MAX_RADIUS_M = 50000.0
MAX_RESULTS_PER_REQUEST = 20
DEFAULT_DETAILS_FIELDS = ("place_id", "name", "formatted_address", "geometry", "rating", "opening_hours")

# legacy field name -> Places API (New) field names
_CURRENT_FIELDS: Dict[str, Tuple[str, ...]] = {
    "place_id": ("id",),
    "name": ("displayName",),
    "formatted_address": ("formattedAddress",),
    "geometry": ("location",),
    "rating": ("rating",),
    "user_ratings_total": ("userRatingCount",),
    "price_level": ("priceLevel",),
    "opening_hours": ("currentOpeningHours", "regularOpeningHours"),
    "types": ("types",),
    "photos": ("photos",),
    "business_status": ("businessStatus",),
    "vicinity": ("shortFormattedAddress",),
    "formatted_phone_number": ("nationalPhoneNumber",),
    "website": ("websiteUri",),
    "url": ("googleMapsUri",),
}

# legacy-only place types and their Places API (New) equivalents
_CURRENT_TYPE_ALIASES = {"grocery_or_supermarket": "grocery_store"}
_LEGACY_TYPE_COLLECTIONS = {"establishment", "geocode"}

Page = Tuple[List[PlaceRecord], bool, Optional[str]]


def search_radius(viewport: Optional[BoundingBox]) -> float:
    """Half the viewport diagonal capped at 50 km; the fixed default without a viewport."""
    if viewport is None:
        return DEFAULT_RADIUS_M
    return min(max(viewport.diagonal_meters() / 2, 1.0), MAX_RADIUS_M)


def _point(latlng: LatLng) -> Dict[str, float]:
    return {"latitude": latlng.lat, "longitude": latlng.lng}


def _rectangle(viewport: BoundingBox) -> Dict[str, Any]:
    return {"rectangle": {"low": _point(viewport.south_west), "high": _point(viewport.north_east)}}


def _circle(center: LatLng, radius: float) -> Dict[str, Any]:
    return {"circle": {"center": _point(center), "radius": radius}}


def build_location_restriction(options: NearbySearchOptions) -> Dict[str, Any]:
    if options.within_viewport and options.viewport is not None:
        return _rectangle(options.viewport)
    center = search_center(options.viewport, options.center_fallback)
    if center is None:
        raise PlacesApiError(ErrorKind.INVALID_REQUEST, "Unable to determine search location")
    return _circle(center, search_radius(options.viewport))


def _clamp_results(max_results: int) -> int:
    return max(1, min(int(max_results or MAX_RESULTS_PER_REQUEST), MAX_RESULTS_PER_REQUEST))


class PlacesAdapter(abc.ABC):
    """Canonical search interface; subclasses implement the provider-specific calls."""

    name = "base"

    def __init__(self, settings: Settings, sleep: Optional[Callable[[float], None]] = None) -> None:
        self.settings = settings
        self._sleep = sleep

    def is_available(self) -> bool:
        return True

    def _require_key(self, token: CancellationToken) -> str:
        if not self.settings.google_api_key:
            raise PlacesApiError(
                ErrorKind.MISSING_CREDENTIALS,
                "GOOGLE_PLACES_API_KEY is not configured",
                request_id=token.request_id,
            )
        return self.settings.google_api_key

    def search_nearby(self, options: NearbySearchOptions, token: CancellationToken) -> SearchResult:
        started = time.monotonic()
        token.raise_if_cancelled()
        items, has_more, next_token = self._search_nearby(options, token)
        token.raise_if_cancelled()
        return self._result(items, has_more, next_token, options, token, started)

    def search_text(self, options: TextSearchOptions, token: CancellationToken) -> SearchResult:
        """Run a text search, retrying exactly once after a fixed delay on a quota error."""
        started = time.monotonic()
        token.raise_if_cancelled()
        try:
            items, has_more, next_token = self._search_text(options, token)
        except PlacesApiError as exc:
            if exc.kind is not ErrorKind.QUOTA_EXCEEDED:
                raise
            logger.warning(
                "Text search quota exceeded; retrying once in %.1fs (request_id=%s)",
                self.settings.quota_retry_delay,
                token.request_id,
            )
            (self._sleep or time.sleep)(self.settings.quota_retry_delay)
            token.raise_if_cancelled()
            items, has_more, next_token = self._search_text(options, token)
        token.raise_if_cancelled()
        return self._result(items, has_more, next_token, options, token, started)

    def autocomplete(self, text: str, options: AutocompleteOptions, token: CancellationToken) -> List[Prediction]:
        token.raise_if_cancelled()
        predictions = self._autocomplete(text, options, token)
        token.raise_if_cancelled()
        return predictions

    def details(self, place_id: str, fields: Iterable[str], token: CancellationToken) -> PlaceRecord:
        if not place_id:
            raise PlacesApiError(ErrorKind.INVALID_REQUEST, "place_id is required", request_id=token.request_id)
        token.raise_if_cancelled()
        record = self._details(place_id, tuple(fields or DEFAULT_DETAILS_FIELDS), token)
        token.raise_if_cancelled()
        return record

    def _result(
        self,
        items: List[PlaceRecord],
        has_more: bool,
        next_token: Optional[str],
        options: Any,
        token: CancellationToken,
        started: float,
    ) -> SearchResult:
        elapsed_ms = (time.monotonic() - started) * 1000
        if not items:
            logger.info("No results found in %.0fms (request_id=%s)", elapsed_ms, token.request_id)
        return SearchResult(
            items=tuple(items),
            has_more=has_more,
            next_page_token=next_token if has_more else None,
            request_id=token.request_id or "",
            elapsed_ms=elapsed_ms,
            source_query=options,
        )

    @abc.abstractmethod
    def _search_nearby(self, options: NearbySearchOptions, token: CancellationToken) -> Page:
        ...

    @abc.abstractmethod
    def _search_text(self, options: TextSearchOptions, token: CancellationToken) -> Page:
        ...

    @abc.abstractmethod
    def _autocomplete(self, text: str, options: AutocompleteOptions, token: CancellationToken) -> List[Prediction]:
        ...

    @abc.abstractmethod
    def _details(self, place_id: str, fields: Tuple[str, ...], token: CancellationToken) -> PlaceRecord:
        ...


class LegacyAdapter(PlacesAdapter):
    """Legacy Places web service: server-side filters and ``next_page_token`` pagination."""

    name = "legacy"

    def _call(self, fn: Callable[..., Dict[str, Any]], token: CancellationToken, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        try:
            return fn(*args, timeout=self.settings.request_timeout, **kwargs)
        except google_places.GooglePlacesError as exc:
            raise from_legacy_status(exc.status, exc.error_message, token.request_id) from exc

    def _page(self, payload: Dict[str, Any]) -> Page:
        items = [from_legacy_place(result) for result in payload.get("results") or ()]
        next_token = payload.get("next_page_token")
        return items, bool(next_token), next_token

    def _search_nearby(self, options: NearbySearchOptions, token: CancellationToken) -> Page:
        api_key = self._require_key(token)
        center = search_center(options.viewport, options.center_fallback)
        if center is None and not options.page_token:
            raise PlacesApiError(
                ErrorKind.INVALID_REQUEST, "Unable to determine search location", request_id=token.request_id
            )
        payload = self._call(
            google_places.nearby_search,
            token,
            location={"lat": center.lat, "lng": center.lng} if center else {},
            radius=search_radius(options.viewport),
            api_key=api_key,
            place_type=resolve_category(options.category),
            keyword=options.keyword or None,
            opennow=options.open_now,
            pagetoken=options.page_token,
            language=self.settings.language,
        )
        items, has_more, next_token = self._page(payload)
        if options.within_viewport and options.viewport is not None:
            items = [item for item in items if options.viewport.contains(item.location)]
        return items[: options.max_results or None], has_more, next_token

    def _search_text(self, options: TextSearchOptions, token: CancellationToken) -> Page:
        api_key = self._require_key(token)
        location = options.location or search_center(options.viewport, None)
        radius = options.radius_m or (search_radius(options.viewport) if location is not None else None)
        payload = self._call(
            google_places.text_search,
            token,
            query=options.query,
            api_key=api_key,
            pagetoken=options.page_token,
            location={"lat": location.lat, "lng": location.lng} if location else None,
            radius=min(radius, MAX_RADIUS_M) if radius else None,
            opennow=options.open_now,
            place_type=resolve_category(options.category),
            language=self.settings.language,
            region=self.settings.region,
        )
        items, has_more, next_token = self._page(payload)
        return items[: options.max_results or None], has_more, next_token

    def _autocomplete(self, text: str, options: AutocompleteOptions, token: CancellationToken) -> List[Prediction]:
        api_key = self._require_key(token)
        bounds = None
        if options.viewport is not None:
            viewport = options.viewport
            bounds = {"south": viewport.south, "west": viewport.west, "north": viewport.north, "east": viewport.east}
        payload = self._call(
            google_places.autocomplete,
            token,
            text=text,
            api_key=api_key,
            types=options.types,
            country=options.country,
            bounds=bounds,
            sessiontoken=options.session_token,
            language=self.settings.language,
        )
        return [from_legacy_prediction(p) for p in payload.get("predictions") or ()]

    def _details(self, place_id: str, fields: Tuple[str, ...], token: CancellationToken) -> PlaceRecord:
        api_key = self._require_key(token)
        result = self._call(
            google_places.place_details,
            token,
            place_id=place_id,
            api_key=api_key,
            fields=fields,
            language=self.settings.language,
        )
        if not result:
            raise PlacesApiError(ErrorKind.INVALID_REQUEST, f"Place {place_id} not found", request_id=token.request_id)
        return from_legacy_place(result)


class CurrentAdapter(PlacesAdapter):
    """Places API (New): location restrictions in the request, some filters applied after the fetch.

    Nearby search has no pagination in this API, so ``has_more`` is always
    false there; text search forwards ``nextPageToken``.
    """

    name = "current"

    def __init__(self, settings: Settings, sleep: Optional[Callable[[float], None]] = None) -> None:
        super().__init__(settings, sleep)
        self._service_disabled = False

    def is_available(self) -> bool:
        return bool(self.settings.use_new_places_api and self.settings.google_api_key and not self._service_disabled)

    def mark_unavailable(self) -> None:
        self._service_disabled = True

    def _call(self, fn: Callable[..., Dict[str, Any]], token: CancellationToken, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        try:
            return fn(*args, timeout=self.settings.request_timeout, **kwargs)
        except places_new.PlacesNewError as exc:
            if is_service_disabled(exc.payload):
                logger.warning("Places API (New) is not enabled for this project; disabling it")
                self.mark_unavailable()
            raise from_http_error(exc.status_code, exc.payload, token.request_id) from exc

    @staticmethod
    def _place_type(category: Optional[str]) -> Optional[str]:
        place_type = resolve_category(category)
        return _CURRENT_TYPE_ALIASES.get(place_type, place_type) if place_type else None

    @staticmethod
    def _post_filter(items: List[PlaceRecord], open_now: bool, keyword: Optional[str]) -> List[PlaceRecord]:
        if open_now:
            items = [item for item in items if item.open_now is True]
        if keyword:
            items = [item for item in items if matches_keyword(item, keyword)]
        return items

    def _search_nearby(self, options: NearbySearchOptions, token: CancellationToken) -> Page:
        api_key = self._require_key(token)
        body: Dict[str, Any] = {
            "locationRestriction": build_location_restriction(options),
            "maxResultCount": _clamp_results(options.max_results),
            "rankPreference": "POPULARITY",
            "languageCode": self.settings.language,
            "regionCode": self.settings.region,
        }
        place_type = self._place_type(options.category)
        if place_type:
            body["includedPrimaryTypes"] = [place_type]

        payload = self._call(places_new.search_nearby, token, body, api_key)
        items = [from_current_place(place) for place in payload.get("places") or ()]
        return self._post_filter(items, options.open_now, options.keyword), False, None

    def _search_text(self, options: TextSearchOptions, token: CancellationToken) -> Page:
        api_key = self._require_key(token)
        body: Dict[str, Any] = {
            "textQuery": options.query,
            "pageSize": _clamp_results(options.max_results),
            "languageCode": self.settings.language,
            "regionCode": self.settings.region,
        }
        if options.location is not None:
            radius = min(options.radius_m or DEFAULT_RADIUS_M, MAX_RADIUS_M)
            body["locationBias"] = _circle(options.location, radius)
        elif options.viewport is not None:
            body["locationBias"] = _rectangle(options.viewport)
        if options.open_now:
            body["openNow"] = True
        place_type = self._place_type(options.category)
        if place_type:
            body["includedType"] = place_type
        if options.page_token:
            body["pageToken"] = options.page_token

        payload = self._call(places_new.search_text, token, body, api_key)
        items = [from_current_place(place) for place in payload.get("places") or ()]
        next_token = payload.get("nextPageToken")
        return self._post_filter(items, options.open_now, None), bool(next_token), next_token

    def _autocomplete(self, text: str, options: AutocompleteOptions, token: CancellationToken) -> List[Prediction]:
        api_key = self._require_key(token)
        body: Dict[str, Any] = {"input": text, "languageCode": self.settings.language}
        types = [t for t in options.types if t and t not in _LEGACY_TYPE_COLLECTIONS]
        if types:
            body["includedPrimaryTypes"] = types[:5]
        if options.country:
            body["includedRegionCodes"] = [options.country.lower()]
        if options.viewport is not None:
            body["locationBias"] = _rectangle(options.viewport)
        if options.session_token:
            body["sessionToken"] = options.session_token

        payload = self._call(places_new.autocomplete, token, body, api_key)
        predictions = [from_current_suggestion(s) for s in payload.get("suggestions") or ()]
        return [p for p in predictions if p is not None]

    def _details(self, place_id: str, fields: Tuple[str, ...], token: CancellationToken) -> PlaceRecord:
        api_key = self._require_key(token)
        mapped: List[str] = ["id"]
        for field_name in fields:
            for current_name in _CURRENT_FIELDS.get(field_name, ()):
                if current_name not in mapped:
                    mapped.append(current_name)
            if field_name not in _CURRENT_FIELDS:
                logger.debug("Ignoring unsupported details field %s", field_name)
        place = self._call(
            places_new.get_place,
            token,
            place_id,
            api_key,
            fields=mapped,
            language=self.settings.language,
            region=self.settings.region,
        )
        if not place:
            raise PlacesApiError(ErrorKind.INVALID_REQUEST, f"Place {place_id} not found", request_id=token.request_id)
        return from_current_place(place)


class AdapterSelector:
    """Choose the adapter per call: the current API when it is available, otherwise legacy."""

    def __init__(self, current: CurrentAdapter, legacy: LegacyAdapter) -> None:
        self.current = current
        self.legacy = legacy

    def select(self) -> PlacesAdapter:
        return self.current if self.current.is_available() else self.legacy

    @property
    def active_name(self) -> str:
        return self.select().name

    def call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        adapter = self.select()
        try:
            return getattr(adapter, method)(*args, **kwargs)
        except PlacesApiError:
            if adapter is self.current and not self.current.is_available():
                logger.warning("Falling back to the legacy Places web service for %s", method)
                return getattr(self.legacy, method)(*args, **kwargs)
            raise
