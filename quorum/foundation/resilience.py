"""
RESILIENCE - Circuit breaker and retry policy

Composition used by the pipeline (the breaker sees the aggregate outcome of
all retry attempts as one call):

    await breaker.execute(lambda: retry.execute(operation))

Both return Results. Neither ever swallows asyncio.CancelledError.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Deque, Dict, FrozenSet, Optional, TypeVar
import asyncio
import logging
import os
import random
import threading
import time

from quorum.foundation.types import Result, Ok, Err, Error, ErrorCode

logger = logging.getLogger(__name__)

T = TypeVar('T')

Operation = Callable[[], Awaitable[Result[T, Error]]]


# =============================================================================
# RETRY POLICY
# =============================================================================

RETRYABLE_CODES: FrozenSet[str] = frozenset({
    ErrorCode.INVOCATION_FAILED,
    ErrorCode.TIMEOUT,
    ErrorCode.CONNECTION_ERROR,
    ErrorCode.RATE_LIMITED,
    ErrorCode.SERVICE_UNAVAILABLE,
    ErrorCode.NO_VIABLE_PATH,
})

# Outcomes that count against a breaker. Client-side errors (INVALID_INPUT,
# INPUT_OPTIMIZATION_FAILED, ...) never reach the backend and do not count.
BREAKER_FAILURE_CODES: FrozenSet[str] = RETRYABLE_CODES | frozenset({
    ErrorCode.RETRY_EXHAUSTED,
    ErrorCode.PARSE_FAILED,
    ErrorCode.INTERNAL_ERROR,
})


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay_seconds: float = 0.1
    max_delay_seconds: float = 10.0
    exponential_base: float = 2.0
    jitter: bool = False  # 50-150% of the computed delay when enabled
    retryable_codes: FrozenSet[str] = field(default_factory=lambda: RETRYABLE_CODES)

    @classmethod
    def from_env(cls) -> RetryConfig:
        return cls(
            max_attempts=int(os.getenv("QUORUM_RETRY_ATTEMPTS", "3")),
            base_delay_seconds=float(os.getenv("QUORUM_RETRY_BASE_DELAY", "0.1")),
            max_delay_seconds=float(os.getenv("QUORUM_RETRY_MAX_DELAY", "10")),
        )


class RetryPolicy:
    """
    Bounded exponential-backoff retry.

    Delay between attempt k and k+1 is
    min(base_delay * exponential_base ** (k - 1), max_delay).
    Waits go through `sleep` (asyncio.sleep by default) so a cancelled
    caller stops the loop at the next suspension point.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def calculate_delay(self, attempt: int, base_delay: Optional[float] = None) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        base = self.config.base_delay_seconds if base_delay is None else base_delay
        delay = base * (self.config.exponential_base ** (attempt - 1))
        delay = min(delay, self.config.max_delay_seconds)

        if self.config.jitter:
            delay *= (0.5 + random.random())

        return delay

    def should_retry(self, error: Error) -> bool:
        return error.code in self.config.retryable_codes

    async def execute(
        self,
        operation: Operation,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
    ) -> Result[T, Error]:
        """
        Run `operation` until it succeeds or attempts run out.

        Returns the first Ok, a non-retryable Err unchanged, or
        Err(RETRY_EXHAUSTED) caused by the final attempt's error.
        """
        attempts = max(1, max_attempts or self.config.max_attempts)
        last_error: Optional[Error] = None

        for attempt in range(1, attempts + 1):
            try:
                result = await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                result = Err(Error(ErrorCode.INVOCATION_FAILED, str(e) or type(e).__name__))

            if result.is_ok():
                if attempt > 1:
                    logger.info(f"Succeeded on attempt {attempt}/{attempts}")
                return result

            last_error = result.unwrap_err()

            if not self.should_retry(last_error):
                return result

            if attempt < attempts:
                delay = self.calculate_delay(attempt, base_delay)
                logger.warning(
                    f"Attempt {attempt}/{attempts} failed, retrying in {delay:.2f}s: {last_error}"
                )
                await self._sleep(delay)

        return Err(last_error.chain(
            ErrorCode.RETRY_EXHAUSTED,
            f"All {attempts} attempts failed",
        ))


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================

class CircuitState(Enum):
    """State of a circuit breaker."""
    CLOSED = auto()     # Normal operation
    OPEN = auto()       # Failing, reject calls
    HALF_OPEN = auto()  # One trial call allowed


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""
    failure_threshold: int = 5          # Failures in the window before opening
    failure_window_seconds: float = 60.0
    cooldown_seconds: float = 30.0      # Time before half-open
    failure_codes: FrozenSet[str] = field(default_factory=lambda: BREAKER_FAILURE_CODES)

    @classmethod
    def from_env(cls) -> CircuitBreakerConfig:
        return cls(
            failure_threshold=int(os.getenv("QUORUM_BREAKER_THRESHOLD", "5")),
            failure_window_seconds=float(os.getenv("QUORUM_BREAKER_WINDOW", "60")),
            cooldown_seconds=float(os.getenv("QUORUM_BREAKER_COOLDOWN", "30")),
        )


class CircuitBreaker:
    """
    Per-endpoint failure isolation.

    - CLOSED: calls pass; failures are timestamped in a sliding window and
      `failure_threshold` of them inside `failure_window_seconds` trips the
      breaker.
    - OPEN: calls fail fast with BREAKER_OPEN until `cooldown_seconds`
      have elapsed since the trip.
    - HALF_OPEN: exactly one trial call; success closes, failure re-opens
      and restarts the cooldown.

    Only errors whose code is in `failure_codes` are failures. Any other Err
    is handed back untouched and, in HALF_OPEN, frees the trial slot.

    All state transitions happen under one lock with no awaits inside it,
    so concurrent outcome reports cannot interleave.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()

        self.state = CircuitState.CLOSED
        self.opened_at: Optional[float] = None
        self.trial_in_flight = False
        self._failures: Deque[float] = deque()

        self.total_rejections = 0
        self.total_trips = 0

    # -- state machine -------------------------------------------------------

    def _prune(self, now: float) -> None:
        horizon = now - self.config.failure_window_seconds
        while self._failures and self._failures[0] < horizon:
            self._failures.popleft()

    def _trip(self, now: float) -> None:
        self.state = CircuitState.OPEN
        self.opened_at = now
        self.total_trips += 1

    def _acquire(self) -> bool:
        """Decide whether a call may proceed. Returns False to short-circuit."""
        with self._lock:
            now = self._clock()

            if self.state == CircuitState.OPEN:
                if self.opened_at is not None and now - self.opened_at >= self.config.cooldown_seconds:
                    self.state = CircuitState.HALF_OPEN
                    self.trial_in_flight = False
                    logger.info(f"Circuit {self.name}: OPEN -> HALF_OPEN")
                else:
                    self.total_rejections += 1
                    return False

            if self.state == CircuitState.HALF_OPEN:
                if self.trial_in_flight:
                    self.total_rejections += 1
                    return False
                self.trial_in_flight = True

            return True

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.state = CircuitState.CLOSED
                self.trial_in_flight = False
                self.opened_at = None
                self._failures.clear()
                logger.info(f"Circuit {self.name}: HALF_OPEN -> CLOSED (recovered)")

    def record_failure(self) -> None:
        """Record a failed call."""
        with self._lock:
            now = self._clock()

            if self.state == CircuitState.HALF_OPEN:
                self.trial_in_flight = False
                self._trip(now)
                logger.warning(f"Circuit {self.name}: HALF_OPEN -> OPEN (trial failed)")
                return

            if self.state == CircuitState.CLOSED:
                self._failures.append(now)
                self._prune(now)
                if len(self._failures) >= self.config.failure_threshold:
                    self._trip(now)
                    logger.warning(
                        f"Circuit {self.name}: CLOSED -> OPEN "
                        f"({len(self._failures)} failures in {self.config.failure_window_seconds:.0f}s)"
                    )

    def is_failure(self, error: Error) -> bool:
        return error.code in self.config.failure_codes

    def _release_trial(self) -> None:
        with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.trial_in_flight = False

    # -- public API ----------------------------------------------------------

    async def execute(self, operation: Operation) -> Result[T, Error]:
        """
        Run `operation` through the breaker.

        Returns Err(BREAKER_OPEN) without calling it when the breaker is
        open; otherwise feeds the outcome back into the state machine.
        """
        if not self._acquire():
            return Err(Error(
                ErrorCode.BREAKER_OPEN,
                f"Circuit breaker '{self.name}' is open",
            ))

        try:
            result = await operation()
        except asyncio.CancelledError:
            self._release_trial()
            raise
        except Exception as e:
            self.record_failure()
            return Err(Error(ErrorCode.INVOCATION_FAILED, str(e) or type(e).__name__))

        if result.is_ok():
            self.record_success()
        elif self.is_failure(result.unwrap_err()):
            self.record_failure()
        else:
            self._release_trial()
        return result

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            self.state = CircuitState.CLOSED
            self.opened_at = None
            self.trial_in_flight = False
            self._failures.clear()
            logger.info(f"Circuit {self.name}: manually reset to CLOSED")

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit state."""
        with self._lock:
            self._prune(self._clock())
            return {
                "name": self.name,
                "state": self.state.name,
                "recent_failures": len(self._failures),
                "failure_threshold": self.config.failure_threshold,
                "total_trips": self.total_trips,
                "total_rejections": self.total_rejections,
            }
