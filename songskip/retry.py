"""Retry with exponential backoff for transient provider errors."""

import random
import time
from functools import wraps
from typing import Callable, ParamSpec, TypeVar

from songskip.constants import (
    RETRY_BASE_DELAY_SEC,
    RETRY_BUDGET_SEC,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_SEC,
    get_logger,
)

logger = get_logger("retry")

P = ParamSpec("P")
T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before the next attempt, capped and jittered."""
    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return delay * (0.5 + random.random())


def retry_with_backoff(
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_SEC,
    max_delay: float = RETRY_MAX_DELAY_SEC,
    budget: float = RETRY_BUDGET_SEC,
    exceptions: tuple = (Exception,),
) -> Callable[[Callable[P, T]], Callable[P, T | None]]:
    """
    Decorator retrying a poll-time fetch that failed with one of ``exceptions``.

    A fetch runs once per polling cycle, so retries are bounded both by
    ``max_attempts`` and by ``budget``: a retry whose backoff would end past
    the budget is not attempted. Once retries are exhausted the wrapper
    returns None, which the poll loop treats as "no data this cycle".
    Exceptions outside ``exceptions`` propagate immediately.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Initial delay between attempts in seconds
        max_delay: Maximum delay between attempts in seconds
        budget: Seconds since the first attempt after which no retry starts
        exceptions: Tuple of exception types to catch and retry
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T | None]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T | None:
            started = time.monotonic()
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        logger.warning(f"{func.__name__} failed after {attempt} attempts: {e}")
                        return None

                    delay = backoff_delay(attempt, base_delay, max_delay)
                    elapsed = time.monotonic() - started
                    if elapsed + delay > budget:
                        logger.warning(
                            f"{func.__name__} failed, skipping retry to keep the poll cycle "
                            f"under {budget:.1f}s: {e}"
                        )
                        return None

                    logger.debug(f"{func.__name__} attempt {attempt} failed: {e}. Retrying in {delay:.2f}s...")
                    time.sleep(delay)

            return None

        return wrapper

    return decorator
