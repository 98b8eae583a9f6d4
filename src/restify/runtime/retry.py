"""Retry policies wrapping one transport attempt.

Every policy except :class:`NoRetryPolicy` shares the same loop: attempts are
bounded by ``max_attempts`` and by an overall time budget, a predicate
decides which errors are retryable, and the delay before each retry is
capped to the budget that remains. Cancellation is checked before each
attempt and before each sleep and is never retried.
"""

from __future__ import annotations

import logging
import random
import sys
import time
from abc import ABC, abstractmethod
from typing import Callable, TypeVar

from .cancellation import CallCancelledError, CancellationToken
from .errors import RetryableTransportError, RetryExhaustedError, TransportClosedError

T = TypeVar("T")

RetryPredicate = Callable[[BaseException], bool]

UNBOUNDED_ATTEMPTS = sys.maxsize
DEFAULT_DELAY_MILLIS = 100
DEFAULT_TIME_BUDGET_MILLIS = 10_000

logger = logging.getLogger(__name__)


def default_retry_predicate(error: BaseException) -> bool:
    """Retry everything except a closed transport."""
    return not isinstance(error, TransportClosedError)


def retry_on_transport_errors(error: BaseException) -> bool:
    """Retry only transient transport failures (timeouts, connection errors)."""
    return isinstance(error, RetryableTransportError)


class RetryPolicy(ABC):
    """Contract used by the API caller to run one logical call."""

    @abstractmethod
    def retry(
        self,
        operation: Callable[[], T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        """Run ``operation`` until it succeeds or the policy gives up."""


class NoRetryPolicy(RetryPolicy):
    def retry(
        self,
        operation: Callable[[], T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return operation()


class BaseRetryPolicy(RetryPolicy):
    """Bounded-time, bounded-attempt retry loop.

    Subclasses provide :meth:`compute_delay_millis`; :meth:`should_retry`
    delegates to the ``retry_on`` predicate.
    """

    def __init__(
        self,
        time_budget_millis: int,
        max_attempts: int = UNBOUNDED_ATTEMPTS,
        retry_on: RetryPredicate = default_retry_predicate,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if time_budget_millis <= 0:
            raise ValueError("time_budget_millis must be > 0")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.time_budget_millis = time_budget_millis
        self.max_attempts = max_attempts
        self._retry_on = retry_on
        self._clock = clock

    def should_retry(self, error: BaseException) -> bool:
        return self._retry_on(error)

    def compute_delay_millis(
        self, attempt: int, last_error: BaseException | None
    ) -> float:
        return DEFAULT_DELAY_MILLIS

    def retry(
        self,
        operation: Callable[[], T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        token = cancel_token or CancellationToken()
        deadline = self._clock() + self.time_budget_millis / 1000.0
        attempt = 0
        last_error: Exception | None = None

        while True:
            token.raise_if_cancelled()
            if self._clock() > deadline:
                if last_error is not None:
                    raise last_error
                raise RetryExhaustedError(
                    "retry timed out without recorded error",
                    attempts=attempt,
                )

            attempt += 1
            try:
                return operation()
            except CallCancelledError:
                raise
            except Exception as exc:
                last_error = exc
                if not self.should_retry(exc):
                    logger.info(
                        "giving up on non-retryable error",
                        extra={"attempt": attempt, "error": type(exc).__name__},
                    )
                    raise
                if attempt >= self.max_attempts:
                    logger.info(
                        "retry attempts exhausted",
                        extra={"attempt": attempt, "error": type(exc).__name__},
                    )
                    raise

                remaining_millis = (deadline - self._clock()) * 1000.0
                if remaining_millis <= 0:
                    logger.info(
                        "retry budget exhausted",
                        extra={"attempt": attempt, "error": type(exc).__name__},
                    )
                    raise
                delay_millis = min(
                    self.compute_delay_millis(attempt, exc), remaining_millis
                )
                logger.debug(
                    "retrying after failure",
                    extra={
                        "attempt": attempt,
                        "delay_ms": delay_millis,
                        "error": type(exc).__name__,
                    },
                )
                token.raise_if_cancelled()
                token.sleep(max(0.0, delay_millis) / 1000.0)


class FixedDelayRetryPolicy(BaseRetryPolicy):
    """Constant delay between attempts."""

    def __init__(
        self,
        time_budget_millis: int,
        delay_millis: int = DEFAULT_DELAY_MILLIS,
        max_attempts: int = UNBOUNDED_ATTEMPTS,
        retry_on: RetryPredicate = default_retry_predicate,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(time_budget_millis, max_attempts, retry_on, clock)
        if delay_millis < 0:
            raise ValueError("delay_millis must be >= 0")
        self.delay_millis = delay_millis

    def compute_delay_millis(
        self, attempt: int, last_error: BaseException | None
    ) -> float:
        return self.delay_millis


class TimeBoundRetryPolicy(FixedDelayRetryPolicy):
    """Retry until the time budget elapses.

    The budget is checked between attempts; an attempt already running is
    bounded by the transport timeout, not interrupted.
    """


class ExponentialBackoffRetryPolicy(BaseRetryPolicy):
    """Exponential backoff with symmetric jitter.

    Args:
        time_budget_millis: Total time allowed across all attempts.
        max_attempts: Total attempts, including the first.
        base_delay_millis: Delay before the first retry.
        multiplier: Growth factor applied per retry.
        max_delay_millis: Cap on any single delay.
        jitter_factor: Relative jitter (``0.1`` means +/-10%).
        retry_on: Predicate deciding which errors are retried.
        rng: Random source, injectable for deterministic tests.
    """

    def __init__(
        self,
        time_budget_millis: int = DEFAULT_TIME_BUDGET_MILLIS,
        max_attempts: int = 3,
        base_delay_millis: int = 100,
        multiplier: float = 2.0,
        max_delay_millis: int = 10_000,
        jitter_factor: float = 0.1,
        retry_on: RetryPredicate = default_retry_predicate,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(time_budget_millis, max_attempts, retry_on, clock)
        if base_delay_millis < 0:
            raise ValueError("base_delay_millis must be >= 0")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if max_delay_millis < 0:
            raise ValueError("max_delay_millis must be >= 0")
        if jitter_factor < 0.0:
            raise ValueError("jitter_factor must be >= 0.0")
        self.base_delay_millis = base_delay_millis
        self.multiplier = multiplier
        self.max_delay_millis = max_delay_millis
        self.jitter_factor = jitter_factor
        self._rng = rng or random.Random()

    def base_delay_for_attempt(self, attempt: int) -> float:
        """Un-jittered delay for retry ``attempt`` (1-based)."""
        try:
            raw = self.base_delay_millis * self.multiplier ** max(0, attempt - 1)
        except OverflowError:
            return self.max_delay_millis
        return min(raw, self.max_delay_millis)

    def delay_for_attempt(self, attempt: int) -> float:
        capped = self.base_delay_for_attempt(attempt)
        jitter = self._rng.uniform(-1.0, 1.0) * self.jitter_factor * capped
        return min(max(capped + jitter, 0.0), self.max_delay_millis)

    def compute_delay_millis(
        self, attempt: int, last_error: BaseException | None
    ) -> float:
        return self.delay_for_attempt(attempt)
