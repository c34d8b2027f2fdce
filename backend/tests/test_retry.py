"""Tests for bounded retry with exponential backoff."""

import asyncio

from core.errors import VenueRequestError
from core.retry import is_retryable, with_retry


def _flaky(failures):
    """Operation that raises each error in `failures` once, then returns "ok"."""
    calls = []

    async def op():
        calls.append(1)
        if len(calls) <= len(failures):
            raise failures[len(calls) - 1]
        return "ok"

    return op, calls


def _recording_sleep():
    delays = []

    async def sleep(delay):
        delays.append(delay)

    return sleep, delays


class TestIsRetryable:
    def test_server_errors_and_throttling(self) -> None:
        assert is_retryable(VenueRequestError("manifold", "boom", status=503))
        assert is_retryable(VenueRequestError("manifold", "slow down", status=429))
        assert is_retryable(VenueRequestError("manifold", "reset"))

    def test_client_errors(self) -> None:
        assert not is_retryable(VenueRequestError("manifold", "bad request", status=400))
        assert not is_retryable(VenueRequestError("manifold", "unauthorized", status=401))

    def test_other_exceptions(self) -> None:
        assert is_retryable(asyncio.TimeoutError())
        assert not is_retryable(ValueError("bad payload"))


class TestWithRetry:
    def test_succeeds_after_transient_failures(self) -> None:
        op, calls = _flaky([VenueRequestError("manifold", "x", status=502)] * 2)
        sleep, delays = _recording_sleep()
        result = asyncio.run(with_retry(op, max_attempts=3, base_delay=1.0, sleep=sleep))

        assert result.ok
        assert result.value == "ok"
        assert result.attempts == 3
        assert delays == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self) -> None:
        op, calls = _flaky([VenueRequestError("manifold", "x", status=500)] * 5)
        sleep, delays = _recording_sleep()
        result = asyncio.run(with_retry(op, max_attempts=3, base_delay=0.5, sleep=sleep))

        assert not result.ok
        assert len(calls) == 3
        assert delays == [0.5, 1.0]
        assert isinstance(result.error, VenueRequestError)

    def test_client_error_not_retried(self) -> None:
        op, calls = _flaky([VenueRequestError("manifold", "bad", status=400)])
        sleep, delays = _recording_sleep()
        result = asyncio.run(with_retry(op, sleep=sleep))

        assert result.attempts == 1
        assert delays == []

    def test_unwrap_raises_last_error(self) -> None:
        op, _ = _flaky([VenueRequestError("manifold", "bad", status=404)])
        sleep, _ = _recording_sleep()
        result = asyncio.run(with_retry(op, sleep=sleep))
        try:
            result.unwrap()
        except VenueRequestError as e:
            assert e.status == 404
        else:
            raise AssertionError("unwrap should raise")
