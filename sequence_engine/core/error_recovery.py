"""Retry policies for run store writes and outbound API calls."""

import logging
import random
import time
from functools import wraps
from typing import Any, Callable, Optional, Sequence, Type

import requests

from .exceptions import SequenceEngineError, StorageError
from .logging import get_logger, log_with_context


logger = get_logger(__name__)


class RetryConfig:
    """How often, and how patiently, an operation is retried.

    Only exceptions of ``retryable_exceptions`` are retried. Engine errors
    among them must also be marked recoverable, so a refused status
    transition fails on the first attempt even inside a retried write.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: bool = True,
        retryable_exceptions: Sequence[Type[Exception]] = (StorageError,),
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.retryable_exceptions = tuple(retryable_exceptions)
        self.sleep = sleep

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        if not isinstance(exception, self.retryable_exceptions):
            return False
        if isinstance(exception, SequenceEngineError):
            return exception.recoverable
        return True

    def get_delay(self, attempt: int) -> float:
        """Exponential backoff capped at ``max_delay``; jitter keeps 50-100% of it."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


def storage_write_retry(sleep: Callable[[float], None] = time.sleep) -> RetryConfig:
    """Short retries for SQLite writes hitting a locked database."""
    return RetryConfig(max_attempts=3, base_delay=0.1, max_delay=1.0,
                       retryable_exceptions=(StorageError,), sleep=sleep)


def api_call_retry(retry_count: int, sleep: Callable[[float], None] = time.sleep) -> RetryConfig:
    """Network retries for an API call node; ``retry_count`` is extra attempts."""
    return RetryConfig(max_attempts=retry_count + 1, base_delay=0.5, max_delay=5.0,
                       retryable_exceptions=(requests.RequestException,), sleep=sleep)


def with_retry(config: Optional[RetryConfig] = None):
    """Decorator form of :func:`execute_with_retry`."""
    config = config or storage_write_retry()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            return execute_with_retry(func, config, *args, **kwargs)
        return wrapper

    return decorator


def execute_with_retry(func: Callable, config: RetryConfig, *args, **kwargs) -> Any:
    """Call ``func`` until it succeeds or ``config`` gives up, re-raising the last error.

    Retry attempts are logged with the operation name; the run and node the
    call belongs to come from the logging context.
    """
    operation = getattr(func, "__qualname__", repr(func))
    attempt = 1
    while True:
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            if not config.should_retry(e, attempt):
                if attempt > 1:
                    log_with_context(
                        logger, logging.ERROR,
                        f"{operation} gave up after {attempt} attempts: {e}",
                        operation=operation, attempt=attempt, error_type=type(e).__name__
                    )
                raise
            delay = config.get_delay(attempt)
            log_with_context(
                logger, logging.WARNING,
                f"{operation} attempt {attempt}/{config.max_attempts} failed, retrying in {delay:.2f}s: {e}",
                operation=operation, attempt=attempt, error_type=type(e).__name__
            )
            config.sleep(delay)
            attempt += 1
            continue

        if attempt > 1:
            log_with_context(
                logger, logging.INFO, f"{operation} succeeded on attempt {attempt}",
                operation=operation, attempt=attempt
            )
        return result
