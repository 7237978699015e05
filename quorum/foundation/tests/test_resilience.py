"""
Circuit breaker and retry policy tests.

Timing is driven by fake clocks and a recording sleep; nothing here waits.
"""

import asyncio

import pytest

from quorum.foundation.resilience import (
    CircuitBreaker, CircuitBreakerConfig, CircuitState, RetryConfig, RetryPolicy,
)
from quorum.foundation.types import Ok, Err, Error, ErrorCode


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Scripted:
    """Operation returning queued results, counting calls."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, BaseException):
            raise result
        return result


def fail(code: str = ErrorCode.INVOCATION_FAILED) -> Err:
    return Err(Error(code, "boom"))


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def setup_method(self):
        """Set up test fixtures."""
        self.sleep = RecordingSleep()
        self.policy = RetryPolicy(
            RetryConfig(max_attempts=3, base_delay_seconds=0.1, max_delay_seconds=10.0),
            sleep=self.sleep,
        )

    def test_first_success_no_retry(self):
        """Test that success returns immediately."""
        op = Scripted(Ok("done"))
        result = asyncio.run(self.policy.execute(op))

        assert result.unwrap() == "done"
        assert op.calls == 1
        assert self.sleep.delays == []

    def test_recovers_after_failures(self):
        """Test success on a later attempt with exponential delays."""
        op = Scripted(fail(), fail(), Ok("done"))
        result = asyncio.run(self.policy.execute(op))

        assert result.unwrap() == "done"
        assert op.calls == 3
        assert self.sleep.delays == pytest.approx([0.1, 0.2])

    def test_exhaustion_chains_last_error(self):
        """Test RETRY_EXHAUSTED after the attempt bound."""
        op = Scripted(fail(ErrorCode.SERVICE_UNAVAILABLE))
        result = asyncio.run(self.policy.execute(op))

        error = result.unwrap_err()
        assert error.code == ErrorCode.RETRY_EXHAUSTED
        assert error.cause.code == ErrorCode.SERVICE_UNAVAILABLE
        assert op.calls == 3
        assert len(self.sleep.delays) == 2

    def test_non_retryable_returned_unchanged(self):
        """Test that invalid input is not retried."""
        op = Scripted(fail(ErrorCode.INVALID_INPUT))
        result = asyncio.run(self.policy.execute(op))

        assert result.unwrap_err().code == ErrorCode.INVALID_INPUT
        assert op.calls == 1

    def test_exception_counts_as_invocation_failure(self):
        """Test that raised exceptions are retried like failures."""
        op = Scripted(RuntimeError("socket closed"), Ok(1))
        result = asyncio.run(self.policy.execute(op))

        assert result.unwrap() == 1
        assert op.calls == 2

    def test_per_call_overrides(self):
        """Test max_attempts and base_delay overrides."""
        op = Scripted(fail())
        asyncio.run(self.policy.execute(op, max_attempts=2, base_delay=1.0))

        assert op.calls == 2
        assert self.sleep.delays == [1.0]

    def test_delay_capped(self):
        """Test max_delay_seconds."""
        assert self.policy.calculate_delay(1) == pytest.approx(0.1)
        assert self.policy.calculate_delay(4) == pytest.approx(0.8)
        assert self.policy.calculate_delay(50) == 10.0

    def test_cancellation_propagates(self):
        """Test that CancelledError is never converted into a retry."""
        op = Scripted(asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            asyncio.run(self.policy.execute(op))
        assert op.calls == 1

    def test_from_env(self, monkeypatch):
        """Test QUORUM_RETRY_* variables."""
        monkeypatch.setenv("QUORUM_RETRY_ATTEMPTS", "5")
        monkeypatch.setenv("QUORUM_RETRY_BASE_DELAY", "0.5")
        config = RetryConfig.from_env()
        assert config.max_attempts == 5
        assert config.base_delay_seconds == 0.5


class TestCircuitBreaker:
    """Tests for CircuitBreaker."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.breaker = CircuitBreaker(
            "llama-8b",
            CircuitBreakerConfig(failure_threshold=3, failure_window_seconds=60, cooldown_seconds=30),
            clock=self.clock,
        )

    def trip(self):
        for _ in range(3):
            asyncio.run(self.breaker.execute(Scripted(fail())))

    def test_starts_closed(self):
        """Test initial state."""
        assert self.breaker.state == CircuitState.CLOSED
        assert asyncio.run(self.breaker.execute(Scripted(Ok(1)))).unwrap() == 1

    def test_opens_after_threshold(self):
        """Test tripping and fail-fast without invoking."""
        self.trip()
        assert self.breaker.state == CircuitState.OPEN

        op = Scripted(Ok(1))
        result = asyncio.run(self.breaker.execute(op))

        assert result.unwrap_err().code == ErrorCode.BREAKER_OPEN
        assert op.calls == 0
        assert self.breaker.get_state()["total_rejections"] == 1

    def test_failures_outside_window_do_not_trip(self):
        """Test the sliding failure window."""
        asyncio.run(self.breaker.execute(Scripted(fail())))
        asyncio.run(self.breaker.execute(Scripted(fail())))
        self.clock.now += 61
        asyncio.run(self.breaker.execute(Scripted(fail())))

        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.get_state()["recent_failures"] == 1

    def test_half_open_success_closes(self):
        """Test recovery through a trial call."""
        self.trip()
        self.clock.now += 30

        op = Scripted(Ok("back"))
        result = asyncio.run(self.breaker.execute(op))

        assert result.unwrap() == "back"
        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.get_state()["recent_failures"] == 0

    def test_half_open_failure_reopens(self):
        """Test that a failed trial restarts the cooldown."""
        self.trip()
        self.clock.now += 30
        asyncio.run(self.breaker.execute(Scripted(fail())))

        assert self.breaker.state == CircuitState.OPEN
        assert self.breaker.opened_at == 30
        assert self.breaker.total_trips == 2

        self.clock.now += 10
        assert asyncio.run(self.breaker.execute(Scripted(Ok(1)))).unwrap_err().code == ErrorCode.BREAKER_OPEN

    def test_single_trial_in_half_open(self):
        """Test that only one call gets through a half-open breaker."""
        self.trip()
        self.clock.now += 30

        async def scenario():
            gate = asyncio.Event()

            async def slow():
                await gate.wait()
                return Ok("trial")

            trial = asyncio.ensure_future(self.breaker.execute(slow))
            await asyncio.sleep(0)
            rejected = await self.breaker.execute(Scripted(Ok("second")))
            gate.set()
            return await trial, rejected

        trial, rejected = asyncio.run(scenario())
        assert trial.unwrap() == "trial"
        assert rejected.unwrap_err().code == ErrorCode.BREAKER_OPEN

    def test_exception_is_a_failure(self):
        """Test that a raising operation counts as a failure."""
        result = asyncio.run(self.breaker.execute(Scripted(ValueError("bad"))))
        assert result.unwrap_err().code == ErrorCode.INVOCATION_FAILED
        assert self.breaker.get_state()["recent_failures"] == 1

    def test_reset(self):
        """Test manual reset."""
        self.trip()
        self.breaker.reset()
        assert self.breaker.state == CircuitState.CLOSED

    def test_client_errors_do_not_trip(self):
        """Test that errors raised before any invocation leave the breaker closed."""
        for _ in range(5):
            result = asyncio.run(self.breaker.execute(Scripted(fail(ErrorCode.INVALID_INPUT))))
            assert result.unwrap_err().code == ErrorCode.INVALID_INPUT

        assert self.breaker.state == CircuitState.CLOSED
        assert self.breaker.get_state()["recent_failures"] == 0
        assert asyncio.run(self.breaker.execute(Scripted(Ok(1)))).unwrap() == 1

    def test_retry_exhausted_is_a_failure(self):
        """Test that the aggregate retry outcome counts."""
        asyncio.run(self.breaker.execute(Scripted(fail(ErrorCode.RETRY_EXHAUSTED))))
        assert self.breaker.get_state()["recent_failures"] == 1

    def test_client_error_frees_half_open_trial(self):
        """Test that a bad request during HALF_OPEN neither closes nor re-opens."""
        self.trip()
        self.clock.now += 30

        asyncio.run(self.breaker.execute(Scripted(fail(ErrorCode.INVALID_INPUT))))
        assert self.breaker.state == CircuitState.HALF_OPEN
        assert self.breaker.trial_in_flight is False

        assert asyncio.run(self.breaker.execute(Scripted(Ok("trial")))).unwrap() == "trial"
        assert self.breaker.state == CircuitState.CLOSED

    def test_custom_failure_codes(self):
        """Test narrowing what counts as a failure."""
        breaker = CircuitBreaker(
            "bge-large-en",
            CircuitBreakerConfig(failure_threshold=1, failure_codes=frozenset({ErrorCode.TIMEOUT})),
            clock=self.clock,
        )
        asyncio.run(breaker.execute(Scripted(fail(ErrorCode.RATE_LIMITED))))
        assert breaker.state == CircuitState.CLOSED

        asyncio.run(breaker.execute(Scripted(fail(ErrorCode.TIMEOUT))))
        assert breaker.state == CircuitState.OPEN
