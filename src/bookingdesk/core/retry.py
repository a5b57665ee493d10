# src/bookingdesk/core/retry.py
"""RetryManager: Retry logic with tenacity integration.

Provides configurable retry behavior for external calls (ledger API,
token exchange):
- Exponential backoff with jitter: min(base * exp_base^(attempt-1), max) + uniform(0, jitter)
- Backoff capped at max_delay
- Configurable max attempts (total tries, not retries)
- Retryable error filtering supplied by the caller
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

if TYPE_CHECKING:
    from bookingdesk.core.config import RetrySettings

T = TypeVar("T")


class MaxRetriesExceeded(Exception):
    """Raised when max retry attempts are exceeded."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Max retries ({attempts}) exceeded: {last_error}")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    max_attempts is the TOTAL number of tries, not the number of retries.
    So max_attempts=3 means: try, retry, retry (3 total).
    """

    max_attempts: int = 3
    base_delay: float = 0.5  # seconds
    max_delay: float = 8.0  # seconds
    jitter: float = 0.25  # seconds
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays and jitter must be >= 0")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        """Factory for no-retry configuration (single attempt)."""
        return cls(max_attempts=1)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryConfig":
        """Factory from RetrySettings config model.

        Args:
            settings: Validated Pydantic settings model

        Returns:
            RetryConfig with mapped values
        """
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=settings.jitter_seconds,
            exponential_base=settings.exponential_base,
        )


class RetryManager:
    """Runs an operation under a retry policy.

    Example:
        manager = RetryManager(RetryConfig(max_attempts=3))

        rows = manager.execute_with_retry(
            lambda: client.read(sheet_id, "Sheet1!A:Z"),
            is_retryable=lambda e: isinstance(e, LedgerError) and e.retryable,
            on_retry=lambda attempt, error: logger.warning("retrying", attempt=attempt),
        )
    """

    def __init__(self, config: RetryConfig, *, sleep: Callable[[float], None] = time.sleep) -> None:
        """Initialize with config.

        Args:
            config: Retry configuration
            sleep: Function used to wait between attempts (injectable for tests)
        """
        self._config = config
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Execute operation with retry logic.

        Args:
            operation: Operation to execute
            is_retryable: Function to check if error is retryable
            on_retry: Optional callback invoked before each retry (attempt, error)

        Returns:
            Result of operation

        Raises:
            MaxRetriesExceeded: If max attempts exceeded
            Exception: If non-retryable error occurs
        """
        attempt = 0
        last_error: BaseException | None = None

        try:
            for attempt_state in Retrying(
                stop=stop_after_attempt(self._config.max_attempts),
                wait=wait_exponential(
                    multiplier=self._config.base_delay,
                    max=self._config.max_delay,
                    exp_base=self._config.exponential_base,
                )
                + wait_random(0, self._config.jitter),
                retry=retry_if_exception(is_retryable),
                sleep=self._sleep,
                reraise=False,  # RetryError is converted to MaxRetriesExceeded below
            ):
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    try:
                        return operation()
                    except Exception as e:
                        last_error = e
                        # Only report errors that will actually be retried
                        if is_retryable(e) and on_retry and attempt < self._config.max_attempts:
                            on_retry(attempt, e)
                        raise

        except RetryError as e:
            final_error = last_error or e.last_attempt.exception()
            assert final_error is not None, "RetryError without exception is impossible"
            raise MaxRetriesExceeded(attempt, final_error) from e

        raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover
