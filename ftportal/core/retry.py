"""
Retry policy shared by structured fetches and page navigation.

A policy is three things: how many attempts, how long to wait before the
next one, and which exceptions are worth retrying. The heavy lifting is done
by tenacity; this wrapper keeps the call sites small and lets tests inject a
no-op sleep.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Type, TypeVar

from tenacity import Retrying, RetryCallState, retry_if_exception, stop_after_attempt

from ftportal.errors import NavigationError, TransientFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (attempt number starting at 1, exception raised by that attempt) -> seconds
BackoffFn = Callable[[int, BaseException], float]


def linear_backoff(step: float) -> BackoffFn:
    """Wait step × attempt seconds."""
    def _backoff(attempt: int, exc: BaseException) -> float:
        return step * attempt
    return _backoff


def rate_limit_aware_backoff(rate_limited_step: float = 1.5, other_step: float = 0.6) -> BackoffFn:
    """Longer linear backoff after HTTP 429 than after any other failure."""
    def _backoff(attempt: int, exc: BaseException) -> float:
        if isinstance(exc, TransientFetchError) and exc.rate_limited:
            return rate_limited_step * attempt
        return other_step * attempt
    return _backoff


def retry_on(*types: Type[BaseException]) -> Callable[[BaseException], bool]:
    """Predicate matching any of the given exception types."""
    def _predicate(exc: BaseException) -> bool:
        return isinstance(exc, types)
    return _predicate


@dataclass
class RetryPolicy:
    """
    Bounded retry with a pluggable backoff.

    Usage:
        policy = RetryPolicy(attempts=3, backoff=linear_backoff(0.8),
                             retryable=retry_on(NavigationError))
        policy.call(surface.goto, url)

    The last exception is re-raised once attempts are exhausted.
    """
    attempts: int = 3
    backoff: BackoffFn = field(default_factory=lambda: linear_backoff(0.8))
    retryable: Callable[[BaseException], bool] = field(default_factory=lambda: retry_on(Exception))
    sleep: Callable[[float], None] = time.sleep
    label: str = "operation"

    def _wait(self, state: RetryCallState) -> float:
        exc = state.outcome.exception() if state.outcome else None
        delay = self.backoff(state.attempt_number, exc)
        logger.debug(f"{self.label}: attempt {state.attempt_number} failed ({exc}), retrying in {delay:.1f}s")
        return delay

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self.attempts)),
            wait=self._wait,
            retry=retry_if_exception(self.retryable),
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)


def structured_fetch_policy(attempts: int = 3, sleep: Callable[[float], None] = time.sleep) -> RetryPolicy:
    return RetryPolicy(
        attempts=attempts,
        backoff=rate_limit_aware_backoff(),
        retryable=retry_on(TransientFetchError),
        sleep=sleep,
        label="structured fetch",
    )


def navigation_policy(attempts: int = 3, sleep: Callable[[float], None] = time.sleep) -> RetryPolicy:
    return RetryPolicy(
        attempts=attempts,
        backoff=linear_backoff(0.8),
        retryable=retry_on(NavigationError),
        sleep=sleep,
        label="navigation",
    )
