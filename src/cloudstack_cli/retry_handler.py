"""Retry logic with exponential backoff for transient failures.

Read-only control-plane calls (listings, job status queries) may fail
transiently: connection resets, gateway timeouts, throttling. This module
provides a decorator that retries them with exponential backoff.

Mutating calls must never be wrapped: a retried submission could create a
second job on the control plane.

Usage:
    @retry_with_exponential_backoff(max_attempts=3)
    def list_zones():
        return client.list("zone", {})
"""

import functools
import logging
import random
import re
import time
from typing import Any, Callable, TypeVar

from cloudstack_cli.errors import TransportError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def retry_with_exponential_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: bool = True,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable[[F], F]:
    """Decorator for retrying operations with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 30.0)
        jitter: Add random jitter to delays to prevent thundering herd (default: True)
        retryable_exceptions: Tuple of exception types to retry
            (default: TransportError and builtin network errors)

    Returns:
        Decorated function that will retry on transient failures
    """
    if retryable_exceptions is None:
        retryable_exceptions = _get_default_retryable_exceptions()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = initial_delay

            for attempt in range(1, max_attempts + 1):
                try:
                    result = func(*args, **kwargs)

                    if attempt > 1:
                        logger.info(
                            f"{func.__name__} succeeded on attempt {attempt}/{max_attempts}"
                        )

                    return result

                except retryable_exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(
                            f"{func.__name__} failed after {max_attempts} attempts: "
                            f"{_safe_error_message(e)}"
                        )
                        raise

                    actual_delay = delay
                    if jitter:
                        # ±25% of delay
                        jitter_amount = delay * 0.25
                        actual_delay = delay + random.uniform(-jitter_amount, jitter_amount)

                    actual_delay = min(actual_delay, max_delay)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt}/{max_attempts}, "
                        f"retrying in {actual_delay:.2f}s: {_safe_error_message(e)}"
                    )

                    time.sleep(actual_delay)
                    delay *= 2

            raise RuntimeError(f"{func.__name__} failed with unknown error")

        return wrapper  # type: ignore

    return decorator


def _get_default_retryable_exceptions() -> tuple[type[Exception], ...]:
    """Get tuple of default retryable exception types."""
    return (TransportError, TimeoutError, ConnectionError)


_SENSITIVE_PARAMS = re.compile(
    r"(apikey|signature|secretkey|password|token)=[^&\s]*", re.IGNORECASE
)


def _safe_error_message(exception: BaseException) -> str:
    """Create safe error message without leaking credentials.

    Request URLs of the control plane carry the API key and the request
    signature as query parameters; both are masked.
    """
    error_str = _SENSITIVE_PARAMS.sub(lambda m: f"{m.group(1)}=***", str(exception))

    if len(error_str) > 200:
        error_str = error_str[:200] + "..."

    return error_str


def should_retry_http_error(status_code: int) -> bool:
    """Determine if HTTP status code should trigger retry.

    Retryable status codes:
        - 408: Request Timeout
        - 429: Too Many Requests (throttling)
        - 500: Internal Server Error
        - 502: Bad Gateway
        - 503: Service Unavailable
        - 504: Gateway Timeout
    """
    retryable_codes = {408, 429, 500, 502, 503, 504}
    return status_code in retryable_codes


__all__ = [
    "retry_with_exponential_backoff",
    "should_retry_http_error",
]
