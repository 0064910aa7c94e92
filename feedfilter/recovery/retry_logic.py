"""
FeedFilter Retry Logic
======================

Fixed-delay retry for async operations. Only exceptions listed in the
configuration are retried; anything else aborts on the spot.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Type

from ..utils.exceptions import (
    RetryExhaustedError,
    TransientTransportError,
    is_retryable_error,
)
from ..utils.logging import get_logger_for_component


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3                   # Maximum attempts, first one included
    delay: float = 5.0                      # Fixed delay in seconds between attempts
    retry_on_exceptions: Tuple[Type[BaseException], ...] = (TransientTransportError,)


@dataclass
class RetryAttempt:
    """Information about a single attempt."""
    attempt_number: int
    delay: float
    exception: Optional[BaseException]
    timestamp: datetime
    success: bool


@dataclass
class RetryStatistics:
    """Attempt history of one RetryManager."""
    attempts: List[RetryAttempt] = field(default_factory=list)

    def record_attempt(self, attempt: RetryAttempt) -> None:
        self.attempts.append(attempt)
        # Keep only recent attempts
        if len(self.attempts) > 1000:
            self.attempts = self.attempts[-1000:]

    @property
    def total_delays(self) -> int:
        return sum(1 for a in self.attempts if a.delay > 0)


class RetryManager:
    """Runs an async callable up to ``max_attempts`` times."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger=None,
    ):
        self.config = config or RetryConfig()
        self.sleep = sleep
        self.logger = logger or get_logger_for_component("retry_manager")
        self.statistics = RetryStatistics()

    async def retry_async(
        self,
        func: Callable[[], Awaitable[Any]],
        config: Optional[RetryConfig] = None,
        description: Optional[str] = None,
    ) -> Any:
        """
        Retry an async function with a fixed delay between attempts.

        Args:
            func: Zero-argument coroutine function to run
            config: Override default retry configuration
            description: Name used in log messages

        Returns:
            Function result if successful

        Raises:
            The first non-retriable exception, the last retriable exception
            once attempts run out, or RetryExhaustedError
        """
        retry_config = config or self.config
        name = description or getattr(func, "__name__", "operation")
        last_exception = None

        for attempt in range(1, retry_config.max_attempts + 1):
            try:
                self.logger.info(f"Attempt {attempt} to {name}")
                result = await func()

                self.statistics.record_attempt(RetryAttempt(
                    attempt_number=attempt,
                    delay=0.0,
                    exception=None,
                    timestamp=datetime.now(),
                    success=True,
                ))

                if attempt > 1:
                    self.logger.info(f"Retry successful for {name} on attempt {attempt}")

                return result

            except Exception as e:
                if not self._should_retry_exception(e, retry_config):
                    self.logger.warning(
                        f"Non-retriable error on attempt {attempt}: "
                        f"{type(e).__name__}: {e}"
                    )
                    self.statistics.record_attempt(RetryAttempt(
                        attempt_number=attempt,
                        delay=0.0,
                        exception=e,
                        timestamp=datetime.now(),
                        success=False,
                    ))
                    raise

                last_exception = e
                delay = retry_config.delay if attempt < retry_config.max_attempts else 0.0

                self.statistics.record_attempt(RetryAttempt(
                    attempt_number=attempt,
                    delay=delay,
                    exception=e,
                    timestamp=datetime.now(),
                    success=False,
                ))

                if attempt < retry_config.max_attempts:
                    self.logger.warning(
                        f"Attempt {attempt} failed with retriable error: {e}. "
                        f"Retrying in {delay:g} seconds..."
                    )
                    await self.sleep(delay)

        self.logger.error(f"Failed to {name} after {retry_config.max_attempts} attempts")

        if last_exception is not None:
            raise last_exception
        raise RetryExhaustedError(
            f"Failed to {name} after {retry_config.max_attempts} attempts",
            attempts=retry_config.max_attempts,
        )

    @staticmethod
    def _should_retry_exception(exception: BaseException, config: RetryConfig) -> bool:
        """Retry only the configured exception types that are flagged recoverable."""
        if not isinstance(exception, config.retry_on_exceptions):
            return False
        if isinstance(exception, TransientTransportError):
            return is_retryable_error(exception)
        return True
