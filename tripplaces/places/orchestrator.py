"""Public entry point for places search: caching, debouncing, adapter dispatch and metrics."""

import logging
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Optional

from tripplaces.core.config import Settings, get_settings
from tripplaces.places.adapters import DEFAULT_DETAILS_FIELDS, AdapterSelector, CurrentAdapter, LegacyAdapter
from tripplaces.places.cache import ResultCache, details_key, details_prefix, text_search_key
from tripplaces.places.debounce import CancellationToken, DebouncedRequest
from tripplaces.places.errors import ErrorKind, PlacesApiError, normalize_error
from tripplaces.places.metrics import MetricsAccumulator
from tripplaces.places.models import (
    AutocompleteOptions,
    AutocompleteResult,
    DetailsResult,
    MetricsSnapshot,
    NearbySearchOptions,
    SearchResult,
    TextSearchOptions,
)

logger = logging.getLogger(__name__)


def generate_request_id(prefix: str = "req") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def _completed(value: Any = None, exc: Optional[BaseException] = None) -> Future:
    future: Future = Future()
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(value)
    return future


class PlacesOrchestrator:
    """Façade over the cache, debounce controllers, provider adapters and metrics.

    Every operation returns a ``concurrent.futures.Future`` whose exception, when
    set, is always a ``PlacesApiError``. Nearby search (300ms) and autocomplete
    (150ms) are debounced; details calls supersede one another without delay.
    Text search is neither debounced nor superseded, but its results are cached
    for 90 seconds. Nearby results are never cached.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        selector: Optional[AdapterSelector] = None,
        search_cache: Optional[ResultCache] = None,
        details_cache: Optional[ResultCache] = None,
        metrics: Optional[MetricsAccumulator] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or get_settings()
        self.selector = selector or AdapterSelector(CurrentAdapter(self.settings), LegacyAdapter(self.settings))
        if search_cache is None:
            search_cache = ResultCache(self.settings.cache_max_entries, self.settings.cache_evict_batch)
        if details_cache is None:
            details_cache = ResultCache(self.settings.cache_max_entries, self.settings.cache_evict_batch)
        self.search_cache = search_cache
        self.details_cache = details_cache
        self.metrics = metrics or MetricsAccumulator(slow_request_ms=self.settings.slow_request_ms)
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="places-text")
        self._clock = clock

        self._nearby = DebouncedRequest(
            self._tracked("search", "search_nearby"), self.settings.search_debounce_ms / 1000, "search"
        )
        self._autocomplete = DebouncedRequest(
            self._tracked("autocomplete", "autocomplete"), self.settings.autocomplete_debounce_ms / 1000, "autocomplete"
        )
        self._details = DebouncedRequest(self._fetch_details, 0.0, "details")

    # ---------- Public API ----------

    def search_nearby(self, options: NearbySearchOptions) -> "Future[SearchResult]":
        if options.text and options.use_text_search:
            return self.search_text(
                TextSearchOptions(
                    query=options.text,
                    viewport=options.viewport,
                    location=options.center_fallback if options.viewport is None else None,
                    open_now=options.open_now,
                    category=options.category,
                    page_token=options.page_token,
                    max_results=options.max_results,
                    zoom=options.zoom,
                )
            )
        return self._nearby.execute(options, request_id=generate_request_id())

    def search_text(self, options: TextSearchOptions) -> "Future[SearchResult]":
        if not options.query or not options.query.strip():
            return _completed(exc=PlacesApiError(ErrorKind.INVALID_REQUEST, "A search query is required"))

        started = self._clock()
        key = text_search_key(options)
        cached = self.search_cache.get(key)
        if cached is not None:
            logger.debug("Text search cache hit for %r (origin=%s)", options.query, cached.request_id)
            return _completed(
                SearchResult(
                    items=cached.items,
                    has_more=cached.has_more,
                    next_page_token=cached.next_page_token,
                    request_id=generate_request_id("cache"),
                    elapsed_ms=(self._clock() - started) * 1000,
                    source_query=options,
                    from_cache=True,
                    origin_request_id=cached.request_id,
                )
            )

        token = CancellationToken(generate_request_id())
        return self._executor.submit(self._fetch_text, options, key, token)

    def autocomplete(self, text: str, options: Optional[AutocompleteOptions] = None) -> "Future[AutocompleteResult]":
        if not text or not text.strip():
            return _completed(AutocompleteResult(predictions=(), request_id=generate_request_id(), elapsed_ms=0.0))
        return self._autocomplete.execute(text, options or AutocompleteOptions(), request_id=generate_request_id())

    def details(
        self,
        place_id: str,
        fields: Optional[Iterable[str]] = None,
        force_refresh: bool = False,
    ) -> "Future[DetailsResult]":
        fields = tuple(fields or DEFAULT_DETAILS_FIELDS)
        key = details_key(place_id, fields)
        if not force_refresh:
            cached = self.details_cache.get(key)
            if cached is not None:
                logger.debug("Details cache hit for %s", place_id)
                return _completed(
                    DetailsResult(place=cached.place, request_id=cached.request_id, elapsed_ms=0.0, from_cache=True)
                )
        return self._details.execute(place_id, fields, key, request_id=generate_request_id())

    def cancel_search(self) -> None:
        """Reject the pending nearby search; text searches are not superseded and run to completion."""
        self._nearby.cancel()

    def cancel_autocomplete(self) -> None:
        self._autocomplete.cancel()

    def cancel_details(self) -> None:
        self._details.cancel()

    def cancel_all(self) -> None:
        self.cancel_search()
        self.cancel_autocomplete()
        self.cancel_details()

    def clear_cache(self, place_id: Optional[str] = None) -> None:
        """Drop every cached result, or only the cached details of ``place_id``."""
        if place_id:
            removed = self.details_cache.delete_prefix(details_prefix(place_id))
            logger.debug("Cleared %d cached details entries for %s", removed, place_id)
            return
        self.search_cache.clear()
        self.details_cache.clear()

    def details_cache_info(self, place_id: str, fields: Optional[Iterable[str]] = None) -> Optional[Dict[str, float]]:
        return self.details_cache.describe(details_key(place_id, tuple(fields or DEFAULT_DETAILS_FIELDS)))

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def reset_metrics(self) -> None:
        self.metrics.reset()

    @property
    def active_adapter(self) -> str:
        return self.selector.active_name

    def shutdown(self) -> None:
        self.cancel_all()
        self._executor.shutdown(wait=False)

    # ---------- Internals ----------

    def _tracked(self, operation: str, method: str) -> Callable[..., Any]:
        """Build the debounced callable for an adapter method, recording metrics around it."""

        def run(*args: Any, token: CancellationToken) -> Any:
            started = self._clock()
            try:
                value = self.selector.call(method, *args, token=token)
            except Exception as exc:  # noqa: BLE001
                self._record_failure(operation, started, exc, token)
                raise
            elapsed_ms = (self._clock() - started) * 1000
            self.metrics.record(operation, elapsed_ms, True)
            if operation == "autocomplete":
                return AutocompleteResult(predictions=tuple(value), request_id=token.request_id, elapsed_ms=elapsed_ms)
            return value

        return run

    def _record_failure(self, operation: str, started: float, exc: BaseException, token: CancellationToken) -> None:
        error = normalize_error(exc, token.request_id)
        if error.kind is ErrorKind.CANCELLED:
            logger.debug("%s %s cancelled", operation, token.request_id)
            return
        self.metrics.record(operation, (self._clock() - started) * 1000, False)
        logger.warning("Places %s failed: kind=%s message=%s", operation, error.kind.value, error.message)

    def _fetch_text(self, options: TextSearchOptions, key: str, token: CancellationToken) -> SearchResult:
        started = self._clock()
        try:
            result = self.selector.call("search_text", options, token=token)
        except Exception as exc:  # noqa: BLE001
            self._record_failure("search", started, exc, token)
            error = normalize_error(exc, token.request_id)
            if error is exc:
                raise
            raise error from exc
        self.metrics.record("search", (self._clock() - started) * 1000, True)
        self.search_cache.set(key, result, self.settings.search_cache_ttl)
        return result

    def _fetch_details(self, place_id: str, fields: tuple, key: str, token: CancellationToken) -> DetailsResult:
        started = self._clock()
        try:
            place = self.selector.call("details", place_id, fields, token=token)
        except Exception as exc:  # noqa: BLE001
            self._record_failure("details", started, exc, token)
            raise
        elapsed_ms = (self._clock() - started) * 1000
        self.metrics.record("details", elapsed_ms, True)
        result = DetailsResult(place=place, request_id=token.request_id, elapsed_ms=elapsed_ms)
        self.details_cache.set(key, result, self.settings.details_cache_ttl)
        return result


def build_orchestrator(settings: Optional[Settings] = None) -> PlacesOrchestrator:
    return PlacesOrchestrator(settings=settings)
