"""
Retry logic with bounded attempts and a fixed backoff.

Used for operations that may fail transiently and are safe to repeat,
such as syncing the artifact tree to object storage.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        delay_seconds: Delay between attempts
    """
    max_attempts: int = 2
    delay_seconds: float = 2.0

    @classmethod
    def fixed(cls, retries: int, backoff_seconds: float) -> "RetryConfig":
        """
        Build a config from a retry count.

        Args:
            retries: Retries after the first attempt
            backoff_seconds: Constant delay between attempts
        """
        return cls(max_attempts=max(retries, 0) + 1, delay_seconds=max(backoff_seconds, 0.0))


@dataclass
class RetryResult:
    """
    Result of a retry operation.

    Attributes:
        success: Whether the operation succeeded
        result: The result value if successful
        attempts: Number of attempts made
        error: The final error if failed
        error_history: Errors from each failed attempt
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None
    error_history: List[str] = field(default_factory=list)

    @property
    def retries(self) -> int:
        """Attempts made beyond the first."""
        return max(self.attempts - 1, 0)


def retry_with_backoff(
    operation: Callable[[], Any],
    config: RetryConfig,
    operation_name: str = "operation",
) -> RetryResult:
    """
    Execute an operation, retrying any failure until attempts run out.

    Args:
        operation: Callable to execute (should take no arguments)
        config: Retry configuration
        operation_name: Name for logging

    Returns:
        RetryResult with success/failure info

    Example:
        >>> config = RetryConfig.fixed(retries=1, backoff_seconds=2)
        >>> result = retry_with_backoff(lambda: store.sync(...), config)
        >>> if not result.success:
        ...     raise TransferFailed(str(result.error), attempts=result.attempts)
    """
    error_history = []
    last_error: Optional[Exception] = None

    for attempt in range(config.max_attempts):
        try:
            logger.debug(f"{operation_name}: attempt {attempt + 1}/{config.max_attempts}")
            result = operation()
        except Exception as e:
            last_error = e
            error_history.append(str(e))
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{config.max_attempts}: {e}"
            )

            # Don't sleep after the last attempt
            if attempt < config.max_attempts - 1:
                logger.info(f"Retrying {operation_name} in {config.delay_seconds:.1f}s")
                time.sleep(config.delay_seconds)
            continue

        if attempt > 0:
            logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")
        return RetryResult(
            success=True,
            result=result,
            attempts=attempt + 1,
            error_history=error_history,
        )

    logger.error(f"{operation_name} exhausted all {config.max_attempts} attempts")

    return RetryResult(
        success=False,
        attempts=config.max_attempts,
        error=last_error,
        error_history=error_history,
    )
