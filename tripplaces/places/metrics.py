"""Per-operation request counters and a rolling latency average."""

import logging
import threading
from collections import deque
from typing import Deque, Dict

from tripplaces.places.models import MetricsSnapshot

logger = logging.getLogger(__name__)

OPERATIONS = ("search", "autocomplete", "details")
WINDOW_SIZE = 100


class MetricsAccumulator:
    def __init__(self, window_size: int = WINDOW_SIZE, slow_request_ms: float = 1000.0) -> None:
        self.window_size = window_size
        self.slow_request_ms = slow_request_ms
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._total = 0
        self._succeeded = 0
        self._failed = 0
        self._average = 0.0
        self._quota: Dict[str, int] = {operation: 0 for operation in OPERATIONS}
        self._latencies: Deque[float] = deque(maxlen=self.window_size)

    def record(self, operation: str, elapsed_ms: float, success: bool) -> None:
        """Record one completed operation. Never raises."""
        try:
            with self._lock:
                self._total += 1
                self._quota[operation] = self._quota.get(operation, 0) + 1
                if success:
                    self._succeeded += 1
                else:
                    self._failed += 1
                self._latencies.append(float(elapsed_ms))
                self._average = sum(self._latencies) / len(self._latencies)
            if elapsed_ms > self.slow_request_ms:
                logger.warning("Slow Places %s request: %.0fms", operation, elapsed_ms)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to record metrics for %s: %s", operation, exc)

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                total=self._total,
                succeeded=self._succeeded,
                failed=self._failed,
                average_response_ms=self._average,
                quota_usage=dict(self._quota),
                samples=len(self._latencies),
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()
