"""Closed error taxonomy for Places operations and the mappers that feed it."""

import enum
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    BILLING_DISABLED = "BILLING_DISABLED"
    ZERO_RESULTS = "ZERO_RESULTS"
    INVALID_REQUEST = "INVALID_REQUEST"
    REQUEST_DENIED = "REQUEST_DENIED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class PlacesApiError(RuntimeError):
    """Raised for every failed Places operation; ``kind`` is always one of ``ErrorKind``."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        original: Any = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.original = original
        self.request_id = request_id

    @property
    def cancelled(self) -> bool:
        return self.kind is ErrorKind.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "request_id": self.request_id}

    def __repr__(self) -> str:
        return f"PlacesApiError(kind={self.kind.value}, message={self.message!r}, request_id={self.request_id!r})"


def cancelled(request_id: Optional[str] = None, message: str = "Request was cancelled") -> PlacesApiError:
    return PlacesApiError(ErrorKind.CANCELLED, message, request_id=request_id)


def from_legacy_status(
    status: Optional[str],
    error_message: Optional[str] = None,
    request_id: Optional[str] = None,
) -> PlacesApiError:
    """Map a legacy web-service ``status`` field onto the taxonomy."""
    detail = (error_message or "").lower()

    if status == "ZERO_RESULTS":
        return PlacesApiError(ErrorKind.ZERO_RESULTS, "No results found", status, request_id)
    if status == "OVER_QUERY_LIMIT":
        if "billing" in detail:
            return PlacesApiError(
                ErrorKind.BILLING_DISABLED,
                "Billing is not enabled for this project.",
                status,
                request_id,
            )
        return PlacesApiError(
            ErrorKind.QUOTA_EXCEEDED,
            "Search quota exceeded. Please try again later.",
            status,
            request_id,
        )
    if status == "REQUEST_DENIED":
        if "invalid" in detail and "key" in detail:
            return PlacesApiError(ErrorKind.INVALID_CREDENTIALS, "The provided API key is invalid.", status, request_id)
        if "must use an api key" in detail or "missing" in detail:
            return PlacesApiError(ErrorKind.MISSING_CREDENTIALS, "No API key was supplied.", status, request_id)
        if "billing" in detail:
            return PlacesApiError(
                ErrorKind.BILLING_DISABLED,
                "Billing is not enabled for this project.",
                status,
                request_id,
            )
        return PlacesApiError(
            ErrorKind.REQUEST_DENIED,
            "Request denied. Please check your API key and permissions.",
            status,
            request_id,
        )
    if status in {"INVALID_REQUEST", "NOT_FOUND"}:
        return PlacesApiError(
            ErrorKind.INVALID_REQUEST,
            error_message or "Invalid request parameters.",
            status,
            request_id,
        )
    return PlacesApiError(
        ErrorKind.UNKNOWN_ERROR,
        f"Places request failed: {error_message or status}",
        status,
        request_id,
    )


def _error_reasons(error: Dict[str, Any]) -> set:
    reasons = set()
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("reason"):
            reasons.add(detail["reason"])
    return reasons


def from_http_error(
    status_code: int,
    payload: Optional[Dict[str, Any]],
    request_id: Optional[str] = None,
) -> PlacesApiError:
    """Map a Places API (New) error response onto the taxonomy."""
    error = (payload or {}).get("error") or {}
    status = error.get("status") or ""
    message = error.get("message") or f"HTTP {status_code}"
    reasons = _error_reasons(error)
    original = {"status_code": status_code, "status": status, "reasons": sorted(reasons)}

    if "API_KEY_INVALID" in reasons:
        return PlacesApiError(ErrorKind.INVALID_CREDENTIALS, message, original, request_id)
    if "BILLING_DISABLED" in reasons:
        return PlacesApiError(ErrorKind.BILLING_DISABLED, message, original, request_id)
    if status_code == 429 or status == "RESOURCE_EXHAUSTED":
        return PlacesApiError(ErrorKind.QUOTA_EXCEEDED, message, original, request_id)
    if status_code == 403 or status == "PERMISSION_DENIED":
        return PlacesApiError(ErrorKind.REQUEST_DENIED, message, original, request_id)
    if status_code == 401 or status == "UNAUTHENTICATED":
        return PlacesApiError(ErrorKind.MISSING_CREDENTIALS, message, original, request_id)
    if status_code == 400 or status == "INVALID_ARGUMENT":
        return PlacesApiError(ErrorKind.INVALID_REQUEST, message, original, request_id)
    if status_code == 404 or status == "NOT_FOUND":
        return PlacesApiError(ErrorKind.INVALID_REQUEST, message, original, request_id)
    if status_code == 504 or status == "DEADLINE_EXCEEDED":
        return PlacesApiError(ErrorKind.TIMEOUT, message, original, request_id)
    return PlacesApiError(ErrorKind.UNKNOWN_ERROR, message, original, request_id)


def is_service_disabled(payload: Optional[Dict[str, Any]]) -> bool:
    """True when a Places API (New) error says the API is not enabled for the project."""
    error = (payload or {}).get("error") or {}
    return "SERVICE_DISABLED" in _error_reasons(error)


def normalize_error(exc: BaseException, request_id: Optional[str] = None) -> PlacesApiError:
    """Coerce any exception raised below the orchestrator into a ``PlacesApiError``."""
    if isinstance(exc, PlacesApiError):
        if exc.request_id is None:
            exc.request_id = request_id
        return exc
    if isinstance(exc, requests.Timeout):
        return PlacesApiError(ErrorKind.TIMEOUT, "Places request timed out", exc, request_id)
    if isinstance(exc, requests.RequestException):
        return PlacesApiError(ErrorKind.NETWORK_ERROR, f"Network error: {exc}", exc, request_id)
    logger.debug("Wrapping unexpected error %r as UNKNOWN_ERROR", exc)
    return PlacesApiError(ErrorKind.UNKNOWN_ERROR, f"Places request failed: {exc}", exc, request_id)
