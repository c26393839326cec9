"""Resilience layer: rate limiting, circuit breaking and bounded retries around external calls"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from peer_trust.domain.exceptions import CircuitOpenError, ExecutionError, RateLimitedError
from peer_trust.infrastructure.observability.metrics import (
    executor_failure_counter,
    rate_limited_counter,
    record_circuit_state,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CircuitState(str, Enum):
    CLOSED = "closed"
    HALF_OPEN = "half_open"
    OPEN = "open"


class CircuitBreaker:
    """
    Per-operation circuit breaker.

    closed -> open when consecutive failures reach the threshold.
    open -> half_open on the first check after the cooldown; one probe call
    is let through. Probe success closes the circuit, probe failure reopens
    it and restarts the cooldown.
    """

    def __init__(
        self,
        name: str,
        threshold: int = 5,
        cooldown_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ):
        self.name = name
        self.threshold = threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def before_call(self) -> None:
        """Raise CircuitOpenError if the call must not be attempted"""
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._clock() - self._opened_at < self.cooldown_seconds:
                    raise CircuitOpenError(self.name)
                self._set_state(CircuitState.HALF_OPEN)
                self._probe_in_flight = True
                return
            if self._state == CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise CircuitOpenError(self.name)
                self._probe_in_flight = True

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._probe_in_flight = False
            if self._state != CircuitState.CLOSED:
                self._set_state(CircuitState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._probe_in_flight = False
            if self._state == CircuitState.HALF_OPEN or self._failures >= self.threshold:
                self._opened_at = self._clock()
                if self._state != CircuitState.OPEN:
                    self._set_state(CircuitState.OPEN)

    def release_probe(self) -> None:
        """Call ended without a success/failure verdict; allow another probe"""
        with self._lock:
            self._probe_in_flight = False

    def _set_state(self, state: CircuitState) -> None:
        logger.warning(
            f"Circuit {self.name} {self._state.value} -> {state.value}",
            extra={"step": "circuit_transition", "operation": self.name, "failures": self._failures},
        )
        self._state = state
        record_circuit_state(self.name, state.value)


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Fixed-window request counter keyed by identifier.

    Expired windows are swept at most once per window length, so idle
    identifiers do not accumulate.
    """

    def __init__(self, max_requests: int = 30, window_seconds: float = 60.0, clock: Clock = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}
        self._next_sweep = clock() + window_seconds

    def __len__(self) -> int:
        return len(self._windows)

    def acquire(self, key: str) -> None:
        """Count a request for key; raise RateLimitedError when over the cap"""
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._evict_expired(now)
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._windows[key] = window
            if window.count >= self.max_requests:
                raise RateLimitedError(key, window.reset_at - now)
            window.count += 1

    def remaining(self, key: str) -> int:
        with self._lock:
            window = self._windows.get(key)
            if window is None or self._clock() >= window.reset_at:
                return self.max_requests
            return max(self.max_requests - window.count, 0)

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._next_sweep = now + self.window_seconds


@dataclass
class RetryPolicy:
    """Bounded retries with a fixed delay between attempts"""

    attempts: int = 3
    delay_seconds: float = 2.0


class ResilienceGuard:
    """
    Guards calls to an external dependency.

    Order per call: rate limit (rejection consumes no retry), then for each
    attempt a synchronous breaker check before the call. Only ExecutionError
    and timeouts count as failures and are retried; anything else propagates
    unchanged.
    """

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        retry: Optional[RetryPolicy] = None,
        breaker_threshold: int = 5,
        breaker_cooldown_seconds: float = 60.0,
        clock: Clock = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(clock=clock)
        self.retry = retry or RetryPolicy()
        self.breaker_threshold = breaker_threshold
        self.breaker_cooldown_seconds = breaker_cooldown_seconds
        self._clock = clock
        self._sleep = sleep
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def breaker(self, operation: str) -> CircuitBreaker:
        with self._lock:
            breaker = self._breakers.get(operation)
            if breaker is None:
                breaker = CircuitBreaker(
                    operation,
                    threshold=self.breaker_threshold,
                    cooldown_seconds=self.breaker_cooldown_seconds,
                    clock=self._clock,
                )
                self._breakers[operation] = breaker
            return breaker

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {
            b.name: {"state": b.state.value, "consecutive_failures": b.consecutive_failures}
            for b in breakers
        }

    async def call(
        self,
        operation: str,
        func: Callable[[], Awaitable[Any]],
        *,
        rate_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Run func under rate limiting, circuit breaking and retries.

        Raises:
            RateLimitedError: rate_key is over its window cap
            CircuitOpenError: Circuit is open; no attempt was made
            ExecutionError: All attempts failed (attempts set on the error)
        """
        if rate_key is not None:
            try:
                self.rate_limiter.acquire(rate_key)
            except RateLimitedError:
                rate_limited_counter.labels(operation=operation).inc()
                raise

        breaker = self.breaker(operation)
        attempts = max(self.retry.attempts, 1)
        last_error: Optional[ExecutionError] = None

        for attempt in range(1, attempts + 1):
            breaker.before_call()
            try:
                if timeout is not None:
                    result = await asyncio.wait_for(func(), timeout)
                else:
                    result = await func()
            except asyncio.TimeoutError:
                last_error = ExecutionError(f"{operation} timed out after {timeout}s", attempts=attempt)
            except ExecutionError as e:
                last_error = e
            except BaseException:
                breaker.release_probe()
                raise
            else:
                breaker.record_success()
                return result

            breaker.record_failure()
            executor_failure_counter.labels(operation=operation).inc()
            logger.warning(
                f"{operation} attempt {attempt}/{attempts} failed: {last_error}",
                extra={"step": "retry", "operation": operation, "attempt": attempt},
            )
            if attempt < attempts:
                await self._sleep(self.retry.delay_seconds)

        raise ExecutionError(str(last_error), attempts=attempts) from last_error
