"""Debounce and supersede control for one kind of Places operation."""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from tripplaces.places.errors import cancelled, normalize_error

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag handed to each scheduled call."""

    def __init__(self, request_id: Optional[str] = None) -> None:
        self.request_id = request_id
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise cancelled(self.request_id)


class _Call:
    __slots__ = ("future", "token", "timer")

    def __init__(self, future: Future, token: CancellationToken) -> None:
        self.future = future
        self.token = token
        self.timer: Optional[threading.Timer] = None


class DebouncedRequest:
    """Coalesce bursts of calls into one delayed call; only the latest call may settle with data.

    Each ``execute`` supersedes the previous call: its timer is stopped, its
    token is cancelled and its future is rejected with ``CANCELLED`` right away.
    The wrapped function runs on the timer thread and receives the call's
    token as the ``token`` keyword argument.
    """

    def __init__(self, fn: Callable[..., Any], delay: float, name: str = "request") -> None:
        self._fn = fn
        self.delay = delay
        self.name = name
        self._lock = threading.RLock()
        self._active: Optional[_Call] = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._active is not None and not self._active.future.done()

    def execute(self, *args: Any, request_id: Optional[str] = None, **kwargs: Any) -> Future:
        future: Future = Future()
        call = _Call(future, CancellationToken(request_id))
        call.timer = threading.Timer(self.delay, self._fire, args=(call, args, kwargs))
        call.timer.daemon = True

        with self._lock:
            previous = self._active
            self._active = call
            if previous is not None:
                self._supersede(previous)
            call.timer.start()
        return future

    def cancel(self) -> None:
        with self._lock:
            previous = self._active
            self._active = None
            if previous is not None:
                self._supersede(previous)

    def _supersede(self, call: _Call) -> None:
        if call.timer is not None:
            call.timer.cancel()
        call.token.cancel()
        if not call.future.done():
            call.future.set_exception(cancelled(call.token.request_id, f"{self.name} superseded by a newer call"))
            logger.debug("%s %s superseded", self.name, call.token.request_id)

    def _fire(self, call: _Call, args: tuple, kwargs: dict) -> None:
        if call.token.cancelled:
            return
        try:
            result = self._fn(*args, token=call.token, **kwargs)
        except Exception as exc:  # noqa: BLE001
            self._settle(call, exc=normalize_error(exc, call.token.request_id))
        else:
            self._settle(call, result=result)

    def _settle(self, call: _Call, result: Any = None, exc: Optional[BaseException] = None) -> None:
        with self._lock:
            if self._active is call:
                self._active = None
            if call.future.done():
                # superseded while in flight; its late response is discarded
                return
            if call.token.cancelled:
                call.future.set_exception(cancelled(call.token.request_id))
            elif exc is not None:
                call.future.set_exception(exc)
            else:
                call.future.set_result(result)
