import threading

import pytest

from tripplaces.places.debounce import CancellationToken, DebouncedRequest
from tripplaces.places.errors import ErrorKind, PlacesApiError

WAIT = 2.0


class Recorder:
    def __init__(self):
        self.calls = []
        self.tokens = []

    def __call__(self, *args, token):
        self.calls.append(args)
        self.tokens.append(token)
        return args


def _kind(future):
    with pytest.raises(PlacesApiError) as excinfo:
        future.result(timeout=WAIT)
    return excinfo.value.kind


def test_burst_runs_only_the_last_call():
    fn = Recorder()
    debounced = DebouncedRequest(fn, 0.05, "search")

    first = debounced.execute("a", request_id="r1")
    second = debounced.execute("ab", request_id="r2")
    third = debounced.execute("abc", request_id="r3")

    assert third.result(timeout=WAIT) == ("abc",)
    assert fn.calls == [("abc",)]
    assert fn.tokens[0].request_id == "r3"
    assert _kind(first) is ErrorKind.CANCELLED
    assert _kind(second) is ErrorKind.CANCELLED


def test_superseded_future_is_rejected_immediately():
    debounced = DebouncedRequest(Recorder(), 10.0, "search")
    first = debounced.execute("a")
    debounced.execute("b")

    assert first.done()
    assert first.exception().kind is ErrorKind.CANCELLED
    debounced.cancel()


def test_cancel_rejects_pending_call_without_running_it():
    fn = Recorder()
    debounced = DebouncedRequest(fn, 0.05, "autocomplete")
    future = debounced.execute("tok")

    assert debounced.pending
    debounced.cancel()

    assert _kind(future) is ErrorKind.CANCELLED
    assert not debounced.pending
    assert fn.calls == []


def test_late_in_flight_response_is_discarded():
    started = threading.Event()
    release = threading.Event()
    results = []

    def slow(value, token):
        if value == "old":
            started.set()
            release.wait(WAIT)
        results.append(value)
        return value

    debounced = DebouncedRequest(slow, 0.0, "details")
    old = debounced.execute("old")
    assert started.wait(WAIT)

    new = debounced.execute("new")
    assert new.result(timeout=WAIT) == "new"
    release.set()

    assert _kind(old) is ErrorKind.CANCELLED


def test_in_flight_token_is_cancelled_when_superseded():
    started = threading.Event()
    release = threading.Event()
    seen = []

    def slow(token):
        seen.append(token)
        started.set()
        release.wait(WAIT)

    debounced = DebouncedRequest(slow, 0.0, "details")
    debounced.execute()
    assert started.wait(WAIT)
    debounced.cancel()
    release.set()

    assert seen[0].cancelled


def test_errors_are_normalized():
    def boom(token):
        raise KeyError("bad payload")

    future = DebouncedRequest(boom, 0.0).execute(request_id="r9")
    error = future.exception(timeout=WAIT)
    assert isinstance(error, PlacesApiError)
    assert error.kind is ErrorKind.UNKNOWN_ERROR
    assert error.request_id == "r9"


def test_places_errors_pass_through():
    def quota(token):
        raise PlacesApiError(ErrorKind.QUOTA_EXCEEDED, "quota")

    future = DebouncedRequest(quota, 0.0).execute()
    assert _kind(future) is ErrorKind.QUOTA_EXCEEDED


def test_cancellation_token():
    token = CancellationToken("r1")
    token.raise_if_cancelled()
    token.cancel()
    assert token.cancelled
    with pytest.raises(PlacesApiError) as excinfo:
        token.raise_if_cancelled()
    assert excinfo.value.request_id == "r1"
