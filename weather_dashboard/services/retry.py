"""Retry with bounded exponential backoff."""

import asyncio
from typing import Awaitable, Callable, TypeVar

from weather_dashboard.core.logging import get_logger
from weather_dashboard.services.errors import ConfigurationError

logger = get_logger(__name__)

T = TypeVar("T")

BASE_DELAY = 1.0  # seconds
MAX_DELAY = 10.0  # seconds


def backoff_delay(attempt: int, base: float = BASE_DELAY, cap: float = MAX_DELAY) -> float:
    """Delay before retrying after failed ``attempt`` (1-based): 1s, 2s, 4s, 8s, then capped."""
    return min(base * 2 ** (attempt - 1), cap)


class RetryExecutor:
    """Runs an async operation, retrying failures with exponential backoff.

    Attempts are counted from 1. Once ``max_attempts`` is reached the last
    failure propagates unchanged, with no delay after the final attempt.
    Exceptions listed in ``no_retry`` propagate on the first failure.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        no_retry: tuple[type[BaseException], ...] = (ConfigurationError,),
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._no_retry = no_retry

    async def run(self, operation: Callable[[], Awaitable[T]], name: str = "operation") -> T:
        """Invoke ``operation`` until it succeeds or the attempt budget is spent.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            name: Label used in log events

        Returns:
            The first successful result
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except self._no_retry:
                raise
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "retry_exhausted",
                        operation=name,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise

                delay = backoff_delay(attempt)
                logger.warning(
                    "retry_scheduled",
                    operation=name,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                attempt += 1
