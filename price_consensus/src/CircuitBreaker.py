"""CircuitBreaker: Per-source fault isolation.

A breaker wraps every call to one source and moves through three states:

    CLOSED     calls pass through; ``failure_threshold`` consecutive failures
               open the circuit for ``timeout`` seconds.
    OPEN       calls are rejected with BreakerOpenError without being run.
               Once the timeout has elapsed the next call becomes a trial call.
    HALF_OPEN  one trial call at a time. ``success_threshold`` consecutive
               successes close the circuit; any failure re-opens it.

.. code-block:: python

    >>> breaker = CircuitBreaker("coingecko", failure_threshold=3, timeout=60.0)
    >>> price = await breaker.execute(lambda: fetcher.fetch("btc"))
    >>> breaker.get_state()
    <BreakerState.CLOSED: 'closed'>
"""

from __future__ import annotations

import inspect
import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from .exceptions import BreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class BreakerStatus:
    """Mutable bookkeeping of a single breaker.

    :ivar state: Current breaker state.
    :ivar consecutive_failures: Failures since the last success.
    :ivar consecutive_successes: Successes since the last failure.
    :ivar next_retry_at: Unix timestamp when an open circuit admits a trial call.
    :ivar total_attempts: Calls actually executed.
    :ivar total_failures: Executed calls that failed.
    :ivar total_successes: Executed calls that succeeded.
    :ivar total_rejections: Calls rejected without execution.
    :ivar last_failure_at: Unix timestamp of the last failure.
    :ivar last_success_at: Unix timestamp of the last success.
    """

    state: BreakerState = BreakerState.CLOSED
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    next_retry_at: float | None = None
    total_attempts: int = 0
    total_failures: int = 0
    total_successes: int = 0
    total_rejections: int = 0
    last_failure_at: float | None = None
    last_success_at: float | None = None


class CircuitBreaker:
    """Circuit breaker guarding calls to one price source.

    The breaker is safe to share between concurrent tasks calling the same
    source: state transitions happen under a lock, and while half-open only
    one trial call is admitted at a time.

    :ivar name: Source name, used in logs and errors.
    :ivar failure_threshold: Consecutive failures that open the circuit.
    :ivar success_threshold: Consecutive half-open successes that close it.
    :ivar timeout: Seconds an open circuit waits before admitting a trial call.
    """

    DEFAULT_FAILURE_THRESHOLD = 5
    DEFAULT_SUCCESS_THRESHOLD = 2
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        name: str,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        success_threshold: int = DEFAULT_SUCCESS_THRESHOLD,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the breaker in the CLOSED state.

        :param name: Source name.
        :param failure_threshold: Consecutive failures before opening (default: 5).
        :param success_threshold: Consecutive successes before closing (default: 2).
        :param timeout: Seconds before an open circuit is retried (default: 30).
        :raises ValueError: If parameters are invalid.
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if success_threshold < 1:
            raise ValueError("success_threshold must be at least 1")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self._status = BreakerStatus()
        self._trial_in_flight = False
        self._lock = threading.Lock()

    async def execute(self, call: Callable[[], Awaitable[T]]) -> T:
        """Run ``call`` under the breaker's rules.

        Any exception raised by the call is recorded as a failure and
        re-raised. Cancellation is not recorded either way.

        :param call: Zero-argument callable returning an awaitable.
        :returns: The call's result.
        :raises BreakerOpenError: If the circuit rejects the call.
        """
        is_trial = self._before_call()
        try:
            result = await call()
        except Exception:
            self._on_failure()
            raise
        else:
            self._on_success()
            return result
        finally:
            if is_trial:
                with self._lock:
                    self._trial_in_flight = False

    async def execute_with_fallback(
        self,
        call: Callable[[], Awaitable[T]],
        fallback: Callable[[], Any],
    ) -> T:
        """Run ``call``, returning ``fallback()`` if the circuit rejects it.

        Only BreakerOpenError triggers the fallback; failures of the call
        itself propagate.

        :param call: Zero-argument callable returning an awaitable.
        :param fallback: Zero-argument callable, sync or async.
        :returns: The call's result or the fallback value.
        """
        try:
            return await self.execute(call)
        except BreakerOpenError:
            logger.warning(f"[{self.name}] Circuit open, using fallback")
            value = fallback()
            if inspect.isawaitable(value):
                value = await value
            return value

    def _before_call(self) -> bool:
        """Admit or reject a call, moving OPEN to HALF_OPEN when due.

        :returns: True if the admitted call is a half-open trial call.
        :raises BreakerOpenError: If the call is rejected.
        """
        with self._lock:
            status = self._status
            if status.state is BreakerState.OPEN:
                if status.next_retry_at is not None and time.time() < status.next_retry_at:
                    status.total_rejections += 1
                    raise BreakerOpenError(self.name, status.next_retry_at)
                status.state = BreakerState.HALF_OPEN
                status.consecutive_successes = 0
                logger.info(f"[{self.name}] Circuit HALF_OPEN, probing source")

            if status.state is BreakerState.HALF_OPEN:
                if self._trial_in_flight:
                    status.total_rejections += 1
                    raise BreakerOpenError(self.name)
                self._trial_in_flight = True
                status.total_attempts += 1
                return True

            status.total_attempts += 1
            return False

    def _on_success(self) -> None:
        with self._lock:
            status = self._status
            status.total_successes += 1
            status.last_success_at = time.time()
            status.consecutive_failures = 0
            status.consecutive_successes += 1

            if (
                status.state is BreakerState.HALF_OPEN
                and status.consecutive_successes >= self.success_threshold
            ):
                status.state = BreakerState.CLOSED
                status.consecutive_successes = 0
                status.next_retry_at = None
                logger.info(f"[{self.name}] Circuit CLOSED after recovery")

    def _on_failure(self) -> None:
        with self._lock:
            status = self._status
            now = time.time()
            status.total_failures += 1
            status.last_failure_at = now
            status.consecutive_failures += 1
            status.consecutive_successes = 0

            if status.state is BreakerState.HALF_OPEN:
                status.state = BreakerState.OPEN
                status.next_retry_at = now + self.timeout
                logger.warning(
                    f"[{self.name}] Circuit re-opened after failed trial call, "
                    f"retry in {self.timeout:.0f}s"
                )
            elif (
                status.state is BreakerState.CLOSED
                and status.consecutive_failures >= self.failure_threshold
            ):
                status.state = BreakerState.OPEN
                status.next_retry_at = now + self.timeout
                logger.error(
                    f"[{self.name}] Circuit OPENED after "
                    f"{status.consecutive_failures} consecutive failures, "
                    f"retry in {self.timeout:.0f}s"
                )

    def get_state(self) -> BreakerState:
        """Get the current state (OPEN is reported until a trial call is admitted)."""
        with self._lock:
            return self._status.state

    def get_stats(self) -> BreakerStatus:
        """Get a snapshot copy of the breaker's bookkeeping."""
        with self._lock:
            return replace(self._status)

    def is_available(self) -> bool:
        """Check whether a call made now would be admitted.

        :returns: False while open and before ``next_retry_at``, or while a
            half-open trial call is in flight.
        """
        with self._lock:
            status = self._status
            if status.state is BreakerState.CLOSED:
                return True
            if status.state is BreakerState.HALF_OPEN:
                return not self._trial_in_flight
            return status.next_retry_at is None or time.time() >= status.next_retry_at

    def reset(self) -> None:
        """Force the circuit CLOSED and clear its counters.

        Lifetime totals are kept.
        """
        with self._lock:
            status = self._status
            status.state = BreakerState.CLOSED
            status.consecutive_failures = 0
            status.consecutive_successes = 0
            status.next_retry_at = None
            self._trial_in_flight = False
        logger.info(f"[{self.name}] Circuit manually reset")
