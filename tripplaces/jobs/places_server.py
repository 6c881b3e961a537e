"""HTTP entrypoint exposing the places orchestrator to the trip map UI."""

from __future__ import annotations

import logging
import os
import threading
from collections import OrderedDict
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from tripplaces.core.config import get_settings
from tripplaces.places.errors import ErrorKind, PlacesApiError
from tripplaces.places.models import (
    AutocompleteOptions,
    BoundingBox,
    DetailsResult,
    LatLng,
    NearbySearchOptions,
    PlaceRecord,
    SearchResult,
    TextSearchOptions,
    search_center,
)
from tripplaces.places.orchestrator import PlacesOrchestrator, build_orchestrator
from tripplaces.places.photos import build_photo_url, map_photos_to_contributors, photos_for_reviewer
from tripplaces.places.sorting import SORT_OPTIONS, sort_places

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & sessions ----------
app = Flask(__name__)
_orchestrators: "OrderedDict[str, PlacesOrchestrator]" = OrderedDict()
_orchestrators_lock = threading.Lock()

RESULT_WAIT_SECONDS = 30
SESSION_HEADER = "X-Session-Id"

_STATUS_BY_KIND = {
    ErrorKind.CANCELLED: 409,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.NETWORK_ERROR: 502,
    ErrorKind.INVALID_CREDENTIALS: 502,
    ErrorKind.MISSING_CREDENTIALS: 502,
    ErrorKind.BILLING_DISABLED: 502,
    ErrorKind.REQUEST_DENIED: 502,
}


class BadRequest(ValueError):
    """Raised for malformed request payloads."""


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never calls Google."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "api_key_configured": bool(settings.google_api_key),
                "adapter": _get_orchestrator().active_adapter,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/places/nearby")
def search_nearby() -> Any:
    """
    Debounced nearby search within the visible map.
    JSON fields: viewport {south, west, north, east} or center {lat, lng} (one required),
    optional category, open_now, keyword, within_viewport, max_results, text,
    use_text_search, page_token, zoom. Query param ``sort`` reorders the items.
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        options = _parse_nearby(payload)
        sort_by = _parse_sort()
    except BadRequest as exc:
        return jsonify({"error": str(exc)}), 400

    future = _get_orchestrator().search_nearby(options)
    center = search_center(options.viewport, options.center_fallback)
    return _respond(future, lambda result: _search_payload(result, sort_by, center))


@app.post("/places/text")
def search_text() -> Any:
    """
    Free-text search (cached for 90s).
    JSON fields: query (required), optional viewport, location, radius_m, open_now,
    category, page_token, max_results, zoom.
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        options = _parse_text(payload)
        sort_by = _parse_sort()
    except BadRequest as exc:
        return jsonify({"error": str(exc)}), 400

    future = _get_orchestrator().search_text(options)
    center = options.location or search_center(options.viewport, None)
    return _respond(future, lambda result: _search_payload(result, sort_by, center))


@app.get("/places/autocomplete")
def autocomplete() -> Any:
    text = request.args.get("input", "")
    types = tuple(t for t in request.args.get("types", "").split(",") if t) or AutocompleteOptions().types
    options = AutocompleteOptions(
        types=types,
        country=request.args.get("country", "us") or None,
        session_token=request.args.get("session_token") or None,
    )
    future = _get_orchestrator().autocomplete(text, options)
    return _respond(future, lambda result: result.to_dict())


@app.get("/places/details/<place_id>")
def place_details(place_id: str) -> Any:
    """
    Place details (cached for 12 minutes).
    Query params: fields (comma separated), refresh, reviewer (adds that reviewer's photo URLs).
    """
    fields = [f for f in request.args.get("fields", "").split(",") if f] or None
    force_refresh = request.args.get("refresh", "").lower() in {"1", "true", "yes"}
    reviewer = request.args.get("reviewer", "").strip()
    future = _get_orchestrator().details(place_id, fields, force_refresh=force_refresh)
    return _respond(future, lambda result: _details_payload(result, reviewer))


@app.get("/places/details/<place_id>/cache")
def place_details_cache(place_id: str) -> Any:
    fields = [f for f in request.args.get("fields", "").split(",") if f] or None
    info = _get_orchestrator().details_cache_info(place_id, fields)
    return jsonify({"data": {"cached": info is not None, **(info or {})}}), 200


@app.post("/places/cancel")
def cancel_requests() -> Any:
    """Cancel pending requests of one kind (?kind=search|autocomplete|details) or all of them."""
    kind = request.args.get("kind", "all")
    orchestrator = _get_orchestrator()
    cancel = {
        "all": orchestrator.cancel_all,
        "search": orchestrator.cancel_search,
        "autocomplete": orchestrator.cancel_autocomplete,
        "details": orchestrator.cancel_details,
    }.get(kind)
    if cancel is None:
        return jsonify({"error": "kind must be one of all, search, autocomplete, details"}), 400
    cancel()
    return jsonify({"data": {"status": "cancelled", "kind": kind}}), 200


@app.delete("/places/cache")
def clear_cache() -> Any:
    place_id = request.args.get("place_id", "").strip() or None
    _get_orchestrator().clear_cache(place_id)
    return jsonify({"data": {"status": "cleared", "place_id": place_id}}), 200


@app.get("/places/metrics")
def get_metrics() -> Any:
    return jsonify({"data": _get_orchestrator().get_metrics().to_dict()}), 200


@app.delete("/places/metrics")
def reset_metrics() -> Any:
    _get_orchestrator().reset_metrics()
    return jsonify({"data": {"status": "reset"}}), 200


# ---------- Internals ----------


def _get_orchestrator() -> PlacesOrchestrator:
    """Return the session's orchestrator; past ``max_sessions`` the least recently used one is shut down."""
    session_id = request.headers.get(SESSION_HEADER, "default").strip() or "default"
    evicted = []
    with _orchestrators_lock:
        orchestrator = _orchestrators.get(session_id)
        if orchestrator is not None:
            _orchestrators.move_to_end(session_id)
            return orchestrator

        orchestrator = build_orchestrator()
        _orchestrators[session_id] = orchestrator
        logger.info("Created places orchestrator for session=%s", session_id)
        while len(_orchestrators) > get_settings().max_sessions:
            evicted.append(_orchestrators.popitem(last=False))

    for stale_id, stale in evicted:
        logger.info("Shutting down idle places orchestrator for session=%s", stale_id)
        stale.shutdown()
    return orchestrator


def _respond(future: Future, render) -> Tuple[Any, int]:
    try:
        result = future.result(timeout=RESULT_WAIT_SECONDS)
    except FutureTimeoutError:
        return jsonify({"error": {"kind": ErrorKind.TIMEOUT.value, "message": "Timed out waiting for Places"}}), 504
    except PlacesApiError as exc:
        status = _STATUS_BY_KIND.get(exc.kind, 500)
        if status >= 500:
            logger.error("Places request failed: %r", exc)
        return jsonify({"error": exc.to_dict()}), status

    try:
        body = render(result)
    except BadRequest as exc:
        return jsonify({"error": str(exc)}), 400
    return jsonify({"data": body}), 200


def _place_payload(place: PlaceRecord, api_key: str) -> Dict[str, Any]:
    body = place.to_dict()
    body["photo_urls"] = [url for url in (build_photo_url(photo, api_key) for photo in place.photos) if url]
    return body


def _search_payload(result: SearchResult, sort_by: str, center: Optional[LatLng]) -> Dict[str, Any]:
    body = result.to_dict()
    items = result.items
    if sort_by != "recommended":
        try:
            items = sort_places(result.items, sort_by, center)
        except ValueError as exc:
            raise BadRequest(str(exc)) from exc
    api_key = get_settings().google_api_key
    body["items"] = [_place_payload(item, api_key) for item in items]
    return body


def _details_payload(result: DetailsResult, reviewer: str) -> Dict[str, Any]:
    api_key = get_settings().google_api_key
    body = result.to_dict()
    body["place"] = _place_payload(result.place, api_key)
    contributor_photos = map_photos_to_contributors(result.place.photos, api_key)
    body["contributor_photos"] = contributor_photos
    if reviewer:
        body["reviewer_photos"] = photos_for_reviewer(reviewer, contributor_photos)
    return body


def _parse_sort() -> str:
    sort_by = request.args.get("sort", "recommended")
    if sort_by not in SORT_OPTIONS:
        raise BadRequest(f"sort must be one of {', '.join(SORT_OPTIONS)}")
    return sort_by


def _parse_viewport(raw: Any) -> Optional[BoundingBox]:
    if raw is None:
        return None
    try:
        return BoundingBox.from_dict(raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise BadRequest("viewport must contain numeric south, west, north, east") from exc


def _parse_latlng(raw: Any, name: str) -> Optional[LatLng]:
    if raw is None:
        return None
    try:
        return LatLng.from_dict(raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise BadRequest(f"{name} must contain numeric lat and lng") from exc


def _parse_int(raw: Any, name: str, default: Optional[int], minimum: int = 1) -> Optional[int]:
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise BadRequest(f"{name} must be numeric") from exc
    if value < minimum:
        raise BadRequest(f"{name} must be at least {minimum}")
    return value


def _parse_nearby(payload: Dict[str, Any]) -> NearbySearchOptions:
    viewport = _parse_viewport(payload.get("viewport"))
    center = _parse_latlng(payload.get("center"), "center")
    if viewport is None and center is None and not payload.get("page_token"):
        raise BadRequest("viewport or center is required")

    return NearbySearchOptions(
        viewport=viewport,
        center_fallback=center,
        category=payload.get("category") or None,
        open_now=bool(payload.get("open_now", False)),
        keyword=(payload.get("keyword") or "").strip() or None,
        within_viewport=bool(payload.get("within_viewport", True)),
        max_results=_parse_int(payload.get("max_results"), "max_results", get_settings().max_results),
        text=(payload.get("text") or "").strip() or None,
        use_text_search=bool(payload.get("use_text_search", False)),
        page_token=payload.get("page_token") or None,
        zoom=_parse_int(payload.get("zoom"), "zoom", None, minimum=0),
    )


def _parse_text(payload: Dict[str, Any]) -> TextSearchOptions:
    query = str(payload.get("query") or "").strip()
    if not query:
        raise BadRequest("missing fields: query")

    radius_raw = payload.get("radius_m")
    radius = None
    if radius_raw is not None:
        try:
            radius = float(radius_raw)
        except (TypeError, ValueError) as exc:
            raise BadRequest("radius_m must be numeric") from exc

    return TextSearchOptions(
        query=query,
        viewport=_parse_viewport(payload.get("viewport")),
        location=_parse_latlng(payload.get("location"), "location"),
        radius_m=radius,
        open_now=bool(payload.get("open_now", False)),
        category=payload.get("category") or None,
        page_token=payload.get("page_token") or None,
        max_results=_parse_int(payload.get("max_results"), "max_results", get_settings().max_results),
        zoom=_parse_int(payload.get("zoom"), "zoom", None, minimum=0),
    )


def main() -> None:
    """Cloud Run injects PORT; fall back to WORKER_PORT locally."""
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port, threaded=True)


if __name__ == "__main__":
    main()
