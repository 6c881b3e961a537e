"""Bounded TTL cache for Places responses and the query fingerprint used as its key."""

import hashlib
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from tripplaces.places.models import BoundingBox, TextSearchOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ENTRIES = 50
DEFAULT_EVICT_BATCH = 10
SEARCH_TTL_SECONDS = 90.0
DETAILS_TTL_SECONDS = 12 * 60.0

_WHITESPACE = re.compile(r"\s+")


@dataclass
class CacheEntry(Generic[T]):
    data: T
    created_at: float
    expires_at: float


class ResultCache(Generic[T]):
    """In-memory key/value store with per-entry TTL and an oldest-first capacity bound.

    Expired entries are dropped lazily on ``get``. Once the store grows past
    ``max_entries`` the ``evict_batch`` entries with the smallest ``created_at``
    are removed, whatever their remaining TTL. Access recency is not tracked.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        evict_batch: int = DEFAULT_EVICT_BATCH,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.evict_batch = evict_batch
        self._clock = clock
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[T]:
        try:
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    return None
                if self._clock() > entry.expires_at:
                    del self._entries[key]
                    logger.debug("Cache entry expired: %s", key)
                    return None
                return entry.data
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache get failed for %s: %s", key, exc)
            return None

    def set(self, key: str, value: T, ttl: float) -> None:
        try:
            with self._lock:
                now = self._clock()
                self._entries[key] = CacheEntry(data=value, created_at=now, expires_at=now + ttl)
                if len(self._entries) > self.max_entries:
                    self._evict_oldest()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache set failed for %s: %s", key, exc)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def delete_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with ``prefix``; returns how many were removed."""
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def describe(self, key: str) -> Optional[Dict[str, float]]:
        """Age and remaining lifetime in seconds of a live entry, or ``None``."""
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is None or now > entry.expires_at:
                return None
            return {"age_s": now - entry.created_at, "expires_in_s": entry.expires_at - now}

    def entry(self, key: str) -> Optional[CacheEntry[T]]:
        with self._lock:
            return self._entries.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _evict_oldest(self) -> None:
        oldest = sorted(self._entries.items(), key=lambda item: item[1].created_at)[: self.evict_batch]
        for key, _ in oldest:
            del self._entries[key]
        logger.debug("Evicted %d cache entries; %d remain", len(oldest), len(self._entries))


def normalize_text(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", (text or "").strip().lower())


def viewport_bucket(viewport: Optional[BoundingBox]) -> str:
    if viewport is None:
        return "-"
    return ",".join(f"{value:.3f}" for value in (viewport.north, viewport.east, viewport.south, viewport.west))


def zoom_bucket(zoom: Optional[int]) -> str:
    """Group zoom levels into five tiers: world, region, city, neighbourhood, street."""
    if zoom is None:
        return "-"
    if zoom <= 5:
        return "0"
    if zoom <= 9:
        return "1"
    if zoom <= 12:
        return "2"
    if zoom <= 15:
        return "3"
    return "4"


def make_cache_key(*parts: Any) -> str:
    raw = "|".join("" if part is None else str(part) for part in parts)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def text_search_key(options: TextSearchOptions) -> str:
    """Fingerprint a text search: query, viewport, zoom tier and open_now, plus location, radius,
    category, page token and page size so differently biased searches never share an entry.
    """
    zoom = options.zoom
    if zoom is None and options.viewport is not None:
        zoom = options.viewport.approximate_zoom()
    location = options.location
    location_bucket = f"{location.lat:.3f},{location.lng:.3f}" if location is not None else "-"
    return make_cache_key(
        "text",
        normalize_text(options.query),
        viewport_bucket(options.viewport),
        zoom_bucket(zoom),
        int(bool(options.open_now)),
        location_bucket,
        options.radius_m,
        options.category,
        options.page_token,
        options.max_results,
    )


def details_key(place_id: str, fields: Any) -> str:
    return f"{details_prefix(place_id)}{make_cache_key(place_id, ','.join(sorted(fields or ())))}"


def details_prefix(place_id: str) -> str:
    return f"details:{place_id}:"
