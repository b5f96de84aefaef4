"""
Retry Strategies

Bounded retry used for upstream quote requests.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional, TypeVar

from .errors import SwapError

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def get_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based): base * attempt."""
        return max(min(self.base_delay_seconds * attempt, self.max_delay_seconds), 0)


@dataclass
class RetryOutcome:
    """Value returned by a retried operation plus how many retries it took."""

    value: Any
    retries: int = 0


class RetryStrategy:
    """
    Retries an async operation while it raises retryable errors.

    An error is retryable when it is a ``SwapError`` whose context says so;
    anything else propagates on the first attempt.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Coroutine[Any, Any, None]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Coroutine[Any, Any, T]],
        label: str = "operation",
    ) -> RetryOutcome:
        last_error: Optional[Exception] = None

        for attempt in range(self.config.max_attempts):
            if attempt > 0:
                delay = self.config.get_delay(attempt)
                self.logger.info(
                    "Retry %d/%d for %s in %.1fs",
                    attempt,
                    self.config.max_attempts - 1,
                    label,
                    delay,
                )
                await self._sleep(delay)

            try:
                value = await operation()
                return RetryOutcome(value=value, retries=attempt)
            except Exception as e:
                if not self.should_retry(e):
                    raise
                last_error = e
                self.logger.warning(
                    "Attempt %d/%d for %s failed: %s",
                    attempt + 1,
                    self.config.max_attempts,
                    label,
                    e,
                )

        raise last_error or RuntimeError("All retry attempts exhausted")

    def should_retry(self, error: Exception) -> bool:
        return isinstance(error, SwapError) and error.context.retryable
