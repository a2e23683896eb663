# backend/tradesim/services/circuit_breaker.py
"""
Circuit breaker guarding calls to the quote provider.

When Yahoo Finance keeps failing, every portfolio poll would otherwise
wait out retries and timeouts. The breaker stops calling the provider
after a threshold of failures and lets it recover; snapshots computed in
the meantime come back degraded immediately.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Too many failures, calls rejected with CircuitBreakerOpen
    HALF_OPEN - Recovery probe, a limited number of calls allowed

State Transitions:
    CLOSED -> OPEN: failure count reaches threshold (within window, if set)
    OPEN -> HALF_OPEN: recovery timeout expires
    HALF_OPEN -> CLOSED: a probe call succeeds
    HALF_OPEN -> OPEN: a probe call fails

Usage:
    breaker = CircuitBreaker(name="yahoo-finance", failure_threshold=5)

    with breaker:
        quotes = fetch_from_provider()

    # or as a decorator
    @breaker
    def fetch():
        ...
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until the next recovery probe is allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """Counters for monitoring (exposed by the /health endpoint)."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Attributes:
        name: Identifier used in logs and CircuitBreakerOpen errors
        failure_threshold: Failures (within failure_window) that open the circuit
        recovery_timeout: Seconds the circuit stays open before probing
        half_open_max_calls: Probe calls allowed while half-open
        failure_window: Sliding window in seconds for counting failures (0 = no window)
        excluded_exceptions: Exception types that do not count as failures
            (e.g. an unknown ticker says nothing about provider health)
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[BaseException], ...] = field(default_factory=tuple)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: deque = field(default_factory=deque, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.info(
            f"CircuitBreaker '{self.name}' initialized: "
            f"threshold={self.failure_threshold}, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    # =========================================================================
    # STATE INSPECTION
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        """Current state (an expired OPEN circuit reports HALF_OPEN)."""
        with self._lock:
            self._refresh_state()
            return self._state

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def stats(self) -> CircuitBreakerStats:
        """Copy of the current counters."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    def time_until_recovery(self) -> float:
        """Seconds left before an open circuit allows a probe (0 when not open)."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0.0
            remaining = self.recovery_timeout - (time.monotonic() - self._opened_at)
            return max(0.0, remaining)

    # =========================================================================
    # CALL GUARD
    # =========================================================================

    def __enter__(self) -> "CircuitBreaker":
        """
        Admit or reject a call.

        Raises:
            CircuitBreakerOpen: If the circuit is open or the half-open
                probe budget is spent
        """
        with self._lock:
            self._stats.total_calls += 1
            self._refresh_state()

            if self._state == CircuitState.OPEN or (
                self._state == CircuitState.HALF_OPEN
                and self._half_open_calls >= self.half_open_max_calls
            ):
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self.time_until_recovery())

            if self._state == CircuitState.HALF_OPEN:
                self._half_open_calls += 1

        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None or isinstance(exc_val, self.excluded_exceptions):
                self._on_success()
            else:
                self._on_failure()
        return False

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Decorate func so every call runs inside this breaker."""
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with self:
                return func(*args, **kwargs)
        return wrapper

    # =========================================================================
    # MANUAL CONTROL
    # =========================================================================

    def reset(self) -> None:
        """Force the circuit closed and forget past failures."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            logger.info(f"CircuitBreaker '{self.name}' manually reset")

    def force_open(self) -> None:
        """Force the circuit open (e.g. provider known to be down)."""
        with self._lock:
            self._transition_to(CircuitState.OPEN)
            logger.warning(f"CircuitBreaker '{self.name}' manually opened")

    # =========================================================================
    # INTERNALS (call with the lock held)
    # =========================================================================

    def _refresh_state(self) -> None:
        if (
            self._state == CircuitState.OPEN
            and time.monotonic() - self._opened_at >= self.recovery_timeout
        ):
            self._transition_to(CircuitState.HALF_OPEN)

    def _on_success(self) -> None:
        self._stats.successful_calls += 1
        self._stats.last_success_time = time.time()
        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        now = time.monotonic()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
            return

        self._failures.append(now)
        if self.failure_window > 0:
            while self._failures and self._failures[0] <= now - self.failure_window:
                self._failures.popleft()

        if len(self._failures) >= self.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        else:
            self._failures.clear()

        logger.info(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )
