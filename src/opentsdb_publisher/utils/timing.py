"""
Timing helpers for the publisher.
"""
import logging
import time
from functools import wraps
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def timed(func: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator to measure and log the execution time of a function.

    Args:
        func: Function to time

    Returns:
        Callable: Wrapped function that logs execution time
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> T:
        start_time = time.time()
        try:
            return func(*args, **kwargs)
        finally:
            duration = time.time() - start_time
            logger.debug(f"{func.__name__} took {duration:.4f} seconds")

    return wrapper


def wall_time_millis() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def seconds_until_next_step(step_seconds: float, now: float) -> float:
    """
    Seconds to wait until the next multiple of the step.

    Args:
        step_seconds: Length of a step in seconds
        now: Current time in epoch seconds

    Returns:
        float: Delay in seconds, in ``(0, step_seconds]``
    """
    return step_seconds - (now % step_seconds)
