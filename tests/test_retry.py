"""Tests for the bounded retry helper."""

import pytest

from seatsnipe.errors import BookingRejectedError, UnretryableError
from seatsnipe.retry import with_retry


class FlakyOperation:
    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.exc = exc or ConnectionError("network blip")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "done"


@pytest.mark.asyncio
class TestWithRetry:
    def setup_method(self):
        self.sleeps = []

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)

    async def test_success_first_try(self):
        op = FlakyOperation(failures=0)
        assert await with_retry(op, 3, 1.0, sleep=self._sleep) == "done"
        assert op.calls == 1
        assert self.sleeps == []

    @pytest.mark.parametrize("k", [1, 2, 4])
    async def test_k_failures_then_success(self, k):
        op = FlakyOperation(failures=k)
        assert await with_retry(op, k + 1, 0.5, sleep=self._sleep) == "done"
        assert op.calls == k + 1
        assert self.sleeps == [0.5] * k

    async def test_exhausted_raises_last_error(self):
        op = FlakyOperation(failures=10)
        with pytest.raises(ConnectionError, match="network blip"):
            await with_retry(op, 3, 2.0, sleep=self._sleep)
        assert op.calls == 3
        # No sleep after the final attempt
        assert self.sleeps == [2.0, 2.0]

    async def test_unretryable_returns_cause_immediately(self):
        cause = BookingRejectedError("fail", "seat taken")
        op = FlakyOperation(failures=5, exc=UnretryableError(cause))

        with pytest.raises(BookingRejectedError) as info:
            await with_retry(op, 5, 1.0, sleep=self._sleep)

        assert info.value is cause
        assert op.calls == 1
        assert self.sleeps == []

    async def test_single_attempt_is_unguarded_call(self):
        op = FlakyOperation(failures=1)
        with pytest.raises(ConnectionError):
            await with_retry(op, 1, 1.0, sleep=self._sleep)
        assert op.calls == 1
        assert self.sleeps == []

    async def test_zero_attempts_rejected(self):
        with pytest.raises(ValueError):
            await with_retry(FlakyOperation(0), 0, 1.0, sleep=self._sleep)
