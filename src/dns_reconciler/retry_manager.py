"""
Retry Manager for the DNS reconciler.

This module provides retry logic with exponential backoff for one-shot
lookups and directory calls. A lookup that answered (FOUND or NOT_FOUND) is
never retried; only transport errors with a transient code are. The
propagation watcher does not use this module: its tick loop is its own
retry mechanism.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from .config import RetryConfig
from .enums import LookupStatus, ResolverErrorCode
from .models import LookupFailure, LookupResult

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Result of a retry operation."""

    success: bool
    result: Optional[T]
    attempts: int
    last_error: Optional[Exception]


class RetryManager:
    """
    Manages retry logic with exponential backoff.

    delay(n) = base_delay * 2^n, capped at max_delay.
    """

    # Error codes that indicate transient errors (should retry)
    TRANSIENT_ERROR_CODES = {
        ResolverErrorCode.TIMEOUT.value,
        ResolverErrorCode.NETWORK_ERROR.value,
        ResolverErrorCode.SERVER_ERROR.value,
    }

    def __init__(self, config: RetryConfig) -> None:
        """
        Initialize the retry manager.

        Args:
            config: Retry configuration with max_retries, delays, and retryable errors
        """
        self._config = config

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate wait time with exponential backoff.

        Args:
            attempt: The current attempt number (0-indexed)

        Returns:
            The delay in seconds before the next retry
        """
        delay = self._config.base_delay_seconds * (2 ** attempt)
        return min(delay, self._config.max_delay_seconds)

    def is_retryable_error(self, error_code) -> bool:
        """
        Check if an error code indicates a transient error.

        Args:
            error_code: String or ResolverErrorCode
        """
        code = error_code.value if hasattr(error_code, "value") else str(error_code)
        if code in self._config.retryable_errors:
            return True
        return code in self.TRANSIENT_ERROR_CODES

    def should_retry(self, result: LookupResult) -> bool:
        """A lookup is retried only when it failed with a transient error."""
        if result.status != LookupStatus.ERROR:
            return False
        if result.error is None:
            return True
        return self.is_retryable_error(result.error.code)

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Optional[Callable[[Exception], bool]] = None,
    ) -> RetryResult[T]:
        """
        Execute an operation with retry logic and exponential backoff.

        Args:
            operation: The async operation to execute
            is_retryable: Optional predicate deciding whether an exception is
                          retried. If not provided, all exceptions are retried.

        Returns:
            RetryResult containing success status, result, attempts, and last error
        """
        last_error: Optional[Exception] = None
        attempts = 0
        max_attempts = self._config.max_retries + 1

        while attempts < max_attempts:
            try:
                result = await operation()
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempts + 1,
                    last_error=None,
                )
            except Exception as e:
                last_error = e
                attempts += 1

                should_retry = is_retryable(e) if is_retryable else True
                if not should_retry or attempts >= max_attempts:
                    break

                await asyncio.sleep(self._calculate_delay(attempts - 1))

        return RetryResult(
            success=False,
            result=None,
            attempts=attempts,
            last_error=last_error,
        )

    async def execute_lookup_with_retry(
        self,
        operation: Callable[[], Awaitable[LookupResult]],
    ) -> tuple[LookupResult, int]:
        """
        Execute a lookup with retry on transient ERROR results.

        Args:
            operation: The async lookup to execute

        Returns:
            Tuple of (final LookupResult, number of attempts)
        """
        attempts = 0
        max_attempts = self._config.max_retries + 1
        last_result: Optional[LookupResult] = None

        while attempts < max_attempts:
            last_result = await operation()
            attempts += 1

            if not self.should_retry(last_result):
                return last_result, attempts
            if attempts >= max_attempts:
                break

            await asyncio.sleep(self._calculate_delay(attempts - 1))

        assert last_result is not None
        return last_result, attempts

    @staticmethod
    def exhausted(result: LookupResult, attempts: int) -> LookupResult:
        """Annotate a still-failing result with the attempt count."""
        if result.error is None:
            return result
        return LookupResult(
            name=result.name,
            type=result.type,
            status=result.status,
            records=result.records,
            error=LookupFailure(
                code=result.error.code,
                message=f"{result.error.message} (after {attempts} attempt(s))",
                http_status_code=result.error.http_status_code,
            ),
            transport=result.transport,
            server=result.server,
            response_time_ms=result.response_time_ms,
        )
