"""Error classification and exponential backoff for provider calls"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from payout_engine.domain.exceptions import (
    DomainException,
    InvalidInputError,
    ProviderError,
    ProviderNetworkError,
    ProviderTimeoutError,
    QuoteExpiredError,
)
from payout_engine.domain.models import Failure, Outcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {408, 425, 429}

RETRYABLE_MESSAGE_PATTERNS = (
    "timeout",
    "timed out",
    "network",
    "econnreset",
    "connection reset",
    "etimedout",
    "enotfound",
    "name or service not known",
    "rate limit",
    "too many requests",
)


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


def error_code_for(status_code: Optional[int], message: str) -> str:
    """Derive the machine-readable payout error code from a provider failure"""
    msg = (message or "").lower()

    if status_code is not None:
        if status_code == 400:
            if "balance" in msg:
                return "INSUFFICIENT_BALANCE"
            if "account" in msg:
                return "INVALID_ACCOUNT"
            return "INVALID_REQUEST"
        if status_code == 401:
            return "UNAUTHORIZED"
        if status_code == 403:
            return "FORBIDDEN"
        if status_code == 408:
            return "TIMEOUT"
        if status_code == 429:
            return "RATE_LIMIT_EXCEEDED"
        if status_code >= 500:
            return "SERVER_ERROR"
        return "WISE_API_ERROR"

    if "timeout" in msg or "timed out" in msg:
        return "TIMEOUT"
    if "network" in msg or "econnreset" in msg or "enotfound" in msg or "connection" in msg:
        return "NETWORK_ERROR"
    return "UNKNOWN_ERROR"


def classify(exc: BaseException) -> Failure:
    """
    Classify an exception as retryable or fatal.

    HTTP 408/425/429/5xx, timeouts, network failures and expired quotes are
    retryable. Any other 4xx and malformed input are fatal regardless of the
    message text.
    """
    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, ProviderTimeoutError) or isinstance(exc, asyncio.TimeoutError):
        return Failure("TIMEOUT", message, True, getattr(exc, "status_code", None), exc)
    if isinstance(exc, ProviderNetworkError) or isinstance(exc, ConnectionError):
        return Failure("NETWORK_ERROR", message, True, getattr(exc, "status_code", None), exc)
    if isinstance(exc, QuoteExpiredError):
        return Failure("QUOTE_EXPIRED", message, True, None, exc)
    if isinstance(exc, InvalidInputError):
        return Failure("INVALID_REQUEST", message, False, None, exc)

    if isinstance(exc, ProviderError) and exc.status_code is not None:
        return Failure(
            error_code_for(exc.status_code, exc.message),
            exc.message,
            is_retryable_status(exc.status_code),
            exc.status_code,
            exc,
        )

    lowered = message.lower()
    retryable = any(pattern in lowered for pattern in RETRYABLE_MESSAGE_PATTERNS)
    return Failure(error_code_for(None, message), message, retryable, None, exc)


class RetryPolicy:
    """Runs an async operation with exponential backoff on retryable failures"""

    def __init__(
        self,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_retry: Optional[Callable[[str, int, Failure], None]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.sleep = sleep
        self.on_retry = on_retry

    @classmethod
    def from_settings(cls, settings, **overrides) -> "RetryPolicy":
        params = dict(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay,
        )
        params.update(overrides)
        return cls(**params)

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-based)"""
        return min(self.initial_delay * (self.multiplier ** (attempt - 1)), self.max_delay)

    async def run(self, operation: str, fn: Callable[[], Awaitable[T]]) -> Outcome[T]:
        """
        Call `fn` until it succeeds, fails fatally, or attempts run out.

        Args:
            operation: Name used in logs and metrics
            fn: Zero-argument coroutine factory, invoked once per attempt

        Returns:
            Outcome with the value, or with the last classified failure. The
            original exception is kept on `failure.exception`.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                value = await fn()
                return Outcome(value=value, attempts=attempt)
            except (DomainException, asyncio.TimeoutError, ConnectionError) as e:
                failure = classify(e)

            if not failure.retryable or attempt >= self.max_attempts:
                logger.warning(
                    f"{operation} failed after {attempt} attempt(s): {failure.message}",
                    extra={
                        "operation": operation,
                        "attempts": attempt,
                        "error_code": failure.code,
                        "retryable": failure.retryable,
                    },
                )
                return Outcome(failure=failure, attempts=attempt)

            delay = self.delay_for(attempt)
            logger.info(
                f"Retrying {operation} in {delay:.2f}s",
                extra={"operation": operation, "attempt": attempt, "error_code": failure.code},
            )
            if self.on_retry is not None:
                self.on_retry(operation, attempt, failure)
            await self.sleep(delay)
