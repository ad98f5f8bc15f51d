"""Retry helper with exponential backoff for provider and database calls."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

import requests
from sqlalchemy.exc import DBAPIError, OperationalError

from .errors import ProviderError, TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient_error(exc: BaseException) -> bool:
    """Return ``True`` for failures worth retrying.

    Timeouts, dropped connections, HTTP 429 and 5xx responses are transient,
    as are database operational errors and invalidated connections. Client
    errors, validation problems, constraint violations and auth rejections are
    not.
    """

    if isinstance(exc, TransientProviderError):
        return True
    if isinstance(exc, ProviderError):
        return False
    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return True
    if isinstance(exc, requests.HTTPError):
        status = exc.response.status_code if exc.response is not None else None
        return status is not None and (status == 429 or 500 <= status < 600)
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError):
        return bool(exc.connection_invalidated)
    return isinstance(exc, (TimeoutError, ConnectionError))


@dataclass
class RetryPolicy:
    """Run an operation up to ``max_attempts`` times while failures are transient."""

    stage: str = "provider"
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    jitter: float = 0.0
    sleep_fn: Callable[[float], None] = time.sleep
    should_retry: Callable[[BaseException], bool] = is_transient_error

    def call(self, func: Callable[[], T]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return func()
            except Exception as exc:
                if not self.should_retry(exc):
                    raise
                if attempt >= self.max_attempts:
                    logger.warning(
                        "%s failed after %d attempts: %s", self.stage, attempt, exc
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s attempt %d/%d failed (%s); retrying in %.2fs",
                    self.stage,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                self.sleep_fn(delay)

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay


def with_retry(
    func: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    stage: str = "provider",
    sleep_fn: Callable[[float], None] = time.sleep,
) -> T:
    """Convenience wrapper around :class:`RetryPolicy` for one-off calls."""

    policy = RetryPolicy(
        stage=stage,
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        sleep_fn=sleep_fn,
    )
    return policy.call(func)


__all__ = ["RetryPolicy", "is_transient_error", "with_retry"]
