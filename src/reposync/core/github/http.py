"""
Retrying GitHub requests.

The client wraps its single send function with ``with_retry``. Two kinds of
failure are retried:

- transient ones (5xx, timeouts, dropped connections), with exponential
  backoff and jitter;
- GitHub rate limits (primary and secondary), after the wait GitHub asks for
  in ``retry-after`` or ``x-ratelimit-reset``, capped at ``max_delay``.

Anything else (404, 422, a plain 403) is raised on the first attempt. A
transient failure of a non-idempotent request (POST) is not retried either:
GitHub may already have acted on it.
"""

import functools
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional, TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff settings.

    Attributes:
        max_retries: Retries after the first attempt
        base_delay: Seconds before the first retry
        multiplier: Growth factor per retry
        jitter: Randomize each delay by ``jitter_ratio``
        jitter_ratio: Fraction of the delay used as ± variance
        max_delay: Longest single wait, also for server-requested waits
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_ratio: float = 0.2
    max_delay: float = 120.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    def calculate_delay(self, attempt: int) -> float:
        """Backoff for a 0-indexed retry attempt, capped at ``max_delay``."""
        delay = self.base_delay * self.multiplier**attempt
        if self.jitter:
            delay *= 1 + random.uniform(-self.jitter_ratio, self.jitter_ratio)
        return min(max(delay, 0.0), self.max_delay)

    def wait_for(self, attempt: int, error: Exception) -> float:
        """Seconds to sleep before retrying after ``error``."""
        delay = self.calculate_delay(attempt)
        if isinstance(error, httpx.HTTPStatusError) and is_rate_limited(error.response):
            requested = retry_after_seconds(error.response)
            if requested is not None:
                delay = min(max(delay, requested), self.max_delay)
        return delay


def is_rate_limited(response: httpx.Response) -> bool:
    """
    Whether GitHub rejected the request for rate limiting.

    429 always is. A 403 is when the quota is exhausted
    (``x-ratelimit-remaining: 0``), when GitHub sends ``retry-after``, or when
    the message mentions a rate limit (secondary limits).
    """
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    headers = response.headers
    return (
        headers.get("x-ratelimit-remaining") == "0"
        or "retry-after" in headers
        or "rate limit" in response.text.lower()
    )


def _parse_seconds(value: Optional[str], relative_to: float = 0.0) -> Optional[float]:
    if value is None:
        return None
    try:
        return max(0.0, float(value) - relative_to)
    except ValueError:
        return None


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Wait requested by ``retry-after``, else by ``x-ratelimit-reset`` (epoch seconds)."""
    requested = _parse_seconds(response.headers.get("retry-after"))
    if requested is None:
        requested = _parse_seconds(response.headers.get("x-ratelimit-reset"), time.time())
    return requested


def is_retryable_error(exception: Exception, method: Optional[str] = None) -> bool:
    """
    Whether a failed request is worth retrying.

    Rate-limited requests were not processed and are always retried.
    Transient failures are retried only when ``method`` is idempotent or unknown.
    """
    if isinstance(exception, httpx.HTTPStatusError) and is_rate_limited(exception.response):
        return True
    if method is not None and method.upper() not in IDEMPOTENT_METHODS:
        return False
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code >= 500
    # Timeouts, connection resets, DNS failures
    return isinstance(exception, httpx.RequestError)


def with_retry(
    config: Optional[RetryConfig] = None,
    *,
    sleep: Callable[[float], None] = time.sleep,
    **options: Any,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator retrying a request function.

    The function must raise ``httpx.HTTPStatusError`` for error responses
    (``response.raise_for_status()``). Backoff settings come from ``config``
    or from keyword arguments accepted by RetryConfig. The HTTP method is
    read from a ``method`` keyword or a leading string argument.

    Example:
        >>> @with_retry(max_retries=5)
        ... def fetch(client: httpx.Client) -> httpx.Response:
        ...     return client.get("/rate_limit").raise_for_status()
    """
    settings = config or RetryConfig(**options)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            method = kwargs.get("method", args[0] if args and isinstance(args[0], str) else None)
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable_error(e, method):
                        raise
                    if attempt >= settings.max_retries:
                        logger.warning("%s: giving up after %d retries: %s", name, attempt, e)
                        raise

                    delay = settings.wait_for(attempt, e)
                    attempt += 1
                    logger.info(
                        "%s: retry %d/%d in %.2fs after: %s",
                        name,
                        attempt,
                        settings.max_retries,
                        delay,
                        e,
                    )
                    sleep(delay)

        return wrapper

    return decorator


__all__ = [
    "IDEMPOTENT_METHODS",
    "RetryConfig",
    "is_rate_limited",
    "is_retryable_error",
    "retry_after_seconds",
    "with_retry",
]
