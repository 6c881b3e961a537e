"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    use_new_places_api: bool = True
    search_debounce_ms: int = 300
    autocomplete_debounce_ms: int = 150
    search_cache_ttl: float = 90.0
    details_cache_ttl: float = 720.0
    cache_max_entries: int = 50
    cache_evict_batch: int = 10
    request_timeout: float = 10.0
    quota_retry_delay: float = 1.5
    max_results: int = 20
    language: str = "en-US"
    region: str = "us"
    slow_request_ms: float = 1000.0
    worker_port: int = 9000
    max_sessions: int = 50


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_PLACES_API_KEY") or os.getenv("GOOGLE_API_KEY", "")
    use_new_places_api = os.getenv("PLACES_USE_NEW_API", "true").lower() in _TRUTHY
    search_debounce_ms = int(os.getenv("PLACES_SEARCH_DEBOUNCE_MS", "300"))
    autocomplete_debounce_ms = int(os.getenv("PLACES_AUTOCOMPLETE_DEBOUNCE_MS", "150"))
    search_cache_ttl = float(os.getenv("PLACES_SEARCH_CACHE_TTL", "90"))
    details_cache_ttl = float(os.getenv("PLACES_DETAILS_CACHE_TTL", "720"))
    cache_max_entries = int(os.getenv("PLACES_CACHE_MAX_ENTRIES", "50"))
    cache_evict_batch = int(os.getenv("PLACES_CACHE_EVICT_BATCH", "10"))
    request_timeout = float(os.getenv("PLACES_REQUEST_TIMEOUT", "10"))
    quota_retry_delay = float(os.getenv("PLACES_QUOTA_RETRY_DELAY", "1.5"))
    max_results = int(os.getenv("PLACES_MAX_RESULTS", "20"))
    language = os.getenv("PLACES_LANGUAGE", "en-US").strip() or "en-US"
    region = os.getenv("PLACES_REGION", "us").strip().lower() or "us"
    slow_request_ms = float(os.getenv("PLACES_SLOW_REQUEST_MS", "1000"))
    worker_port = int(os.getenv("WORKER_PORT", "9000"))
    max_sessions = max(1, int(os.getenv("PLACES_MAX_SESSIONS", "50")))

    if not google_api_key:
        logger.warning("GOOGLE_PLACES_API_KEY is not configured; Google Places requests will fail.")
    if cache_evict_batch > cache_max_entries:
        logger.warning(
            "PLACES_CACHE_EVICT_BATCH=%d exceeds PLACES_CACHE_MAX_ENTRIES=%d; capping it.",
            cache_evict_batch,
            cache_max_entries,
        )
        cache_evict_batch = cache_max_entries

    return Settings(
        google_api_key=google_api_key,
        use_new_places_api=use_new_places_api,
        search_debounce_ms=search_debounce_ms,
        autocomplete_debounce_ms=autocomplete_debounce_ms,
        search_cache_ttl=search_cache_ttl,
        details_cache_ttl=details_cache_ttl,
        cache_max_entries=cache_max_entries,
        cache_evict_batch=cache_evict_batch,
        request_timeout=request_timeout,
        quota_retry_delay=quota_retry_delay,
        max_results=max_results,
        language=language,
        region=region,
        slow_request_ms=slow_request_ms,
        worker_port=worker_port,
        max_sessions=max_sessions,
    )
