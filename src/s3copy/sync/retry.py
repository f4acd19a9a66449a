"""Retry logic with exponential backoff.

This module provides:
- retry_with_backoff: Exponential backoff retry that stops early on cancellation
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from s3copy.storage import TransientStorageError

if TYPE_CHECKING:
    from s3copy.sync.workers.base import CancelToken

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 30.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0

# Only failures that may succeed on a second attempt
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (TransientStorageError,)


def retry_with_backoff(
    func: Callable[[], Any],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    retryable_exceptions: tuple[type[Exception], ...] = RETRYABLE_EXCEPTIONS,
    cancel: CancelToken | None = None,
    description: str = "operation",
) -> Any:
    """Execute a function with exponential backoff retry.

    Args:
        func: Function to execute.
        max_retries: Maximum number of retry attempts after the first call.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        retryable_exceptions: Tuple of exception types to retry on.
        cancel: Token checked before each attempt; also cuts backoff sleeps short.
        description: Label used in log messages.

    Returns:
        Result of the function.

    Raises:
        OperationCancelled: If the token is cancelled between attempts.
        The last exception if all retries fail, or any non-retryable exception.
    """
    backoff = initial_backoff

    for attempt in range(max_retries + 1):
        if cancel is not None:
            cancel.raise_if_cancelled()
        try:
            return func()
        except retryable_exceptions as e:
            if attempt == max_retries:
                if max_retries:
                    logger.error(f"{description}: all {max_retries} retries failed: {e}")
                raise

            logger.warning(
                f"{description}: attempt {attempt + 1}/{max_retries + 1} failed: {e}. "
                f"Retrying in {backoff:.1f}s..."
            )
            if cancel is not None:
                cancel.wait(backoff)
            else:
                time.sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)

    raise RuntimeError("Unexpected retry loop exit")
