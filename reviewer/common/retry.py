"""
Bounded retry with exponential backoff and jitter.

Wraps a single asynchronous operation. Each call gets a fresh budget of
``max_retries + 1`` attempts; there is no state shared between calls.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Tuple

logger = logging.getLogger("reviewer.common.retry")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        initial_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for a single delay, in seconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to randomize each delay by +/-25%
    """
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


@dataclass
class RetryResult:
    """
    Outcome of a retried operation.

    Attributes:
        success: Whether the operation eventually succeeded
        result: The value returned by the successful attempt
        attempts: Number of attempts made
        error: The last error if every attempt failed
        error_history: String form of each failure, in order
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[BaseException] = None
    error_history: List[str] = field(default_factory=list)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Delay in seconds to wait after the given (0-based) failed attempt.
    """
    delay = min(
        config.initial_delay * (config.backoff_multiplier ** attempt),
        config.max_delay,
    )
    if config.jitter:
        delay *= 0.75 + (random.random() * 0.5)
    return delay


class RetryExecutor:
    """
    Runs an async operation with bounded retries.

    Usage:
        executor = RetryExecutor(RetryConfig(max_retries=2))
        response = await executor.run(lambda: client.messages.create(...))
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        retry_on: Tuple[type, ...] = (Exception,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._config = config or RetryConfig()
        self._retry_on = retry_on
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        max_retries: Optional[int] = None,
        operation_name: str = "operation",
    ) -> RetryResult:
        """
        Execute ``operation`` and report the outcome instead of raising.

        Errors outside ``retry_on`` stop the loop immediately and are
        reported as a failed result.
        """
        retries = self._config.max_retries if max_retries is None else max_retries
        max_attempts = max(retries, 0) + 1
        error_history: List[str] = []
        last_error: Optional[BaseException] = None

        for attempt in range(max_attempts):
            try:
                logger.debug("%s: attempt %d/%d", operation_name, attempt + 1, max_attempts)
                result = await operation()
                if attempt > 0:
                    logger.info("%s succeeded after %d attempts", operation_name, attempt + 1)
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempt + 1,
                    error_history=error_history,
                )
            except self._retry_on as e:
                last_error = e
                error_history.append(str(e))
                logger.warning(
                    "%s failed on attempt %d/%d: %s",
                    operation_name, attempt + 1, max_attempts, e,
                )
                # No sleep after the last attempt
                if attempt < max_attempts - 1:
                    delay = calculate_delay(attempt, self._config)
                    logger.debug("Backing off for %.3fs before retry", delay)
                    await self._sleep(delay)
            except Exception as e:
                logger.warning("%s failed with non-retryable error: %s", operation_name, e)
                error_history.append(str(e))
                return RetryResult(
                    success=False,
                    attempts=attempt + 1,
                    error=e,
                    error_history=error_history,
                )

        logger.warning("%s exhausted all %d attempts", operation_name, max_attempts)
        return RetryResult(
            success=False,
            attempts=max_attempts,
            error=last_error,
            error_history=error_history,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        max_retries: Optional[int] = None,
        operation_name: str = "operation",
    ) -> Any:
        """
        Execute ``operation`` and return its value.

        Raises:
            The last error once every attempt has failed.
        """
        outcome = await self.execute(operation, max_retries, operation_name)
        if not outcome.success:
            raise outcome.error
        return outcome.result
