"""Timing utilities for performance logging.

Provides a decorator and a context manager that measure and log how long
explanations take. Both report through ``log_performance`` so timings land
in the performance log.

Example:
    >>> from survival_explain.timing import log_execution_time, Timer
    >>>
    >>> @log_execution_time()
    ... def model_profile(explainer, variables=None):
    ...     ...
    ...
    >>> with Timer(logger, "Fitting rsf"):
    ...     pipeline.fit(X, y)
"""
import time
import functools
import logging
from typing import Callable, Optional

from survival_explain.logging_config import log_performance


def log_execution_time(logger: Optional[logging.Logger] = None):
    """Decorator to log function execution time.

    On success logs a performance record with the duration. On failure logs
    an ERROR with the exception trace and re-raises.

    Args:
        logger: Logger instance (uses the function's module logger if None)

    Returns:
        Decorated function that logs its execution time
    """
    def decorator(func: Callable) -> Callable:
        func_logger = logger or logging.getLogger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            func_logger.debug(f"Starting: {func.__name__}")

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                func_logger.error(
                    f"{func.__name__} failed after {duration:.2f}s: {str(e)}",
                    exc_info=True
                )
                raise

            duration = time.time() - start_time
            log_performance(
                func_logger,
                f"Completed: {func.__name__}",
                duration_sec=round(duration, 2)
            )
            return result

        return wrapper
    return decorator


class Timer:
    """Context manager for timing code blocks.

    Args:
        logger: Logger instance
        description: Description of the operation being timed

    Example:
        >>> with Timer(logger, "Fitting cox_ph"):
        ...     pipeline.fit(X, y)
        INFO     | Starting: Fitting cox_ph
        INFO     | Completed: Fitting cox_ph | duration_sec=0.41
    """

    def __init__(self, logger: logging.Logger, description: str):
        self.logger = logger
        self.description = description
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.time()
        self.logger.info(f"Starting: {self.description}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.time() - self.start_time

        if exc_type is None:
            log_performance(
                self.logger,
                f"Completed: {self.description}",
                duration_sec=round(self.duration, 2)
            )
        else:
            self.logger.error(
                f"{self.description} failed after {self.duration:.2f}s: {exc_val}",
                exc_info=True
            )

        return False

    def elapsed(self) -> float:
        """Get elapsed time in seconds (during execution)."""
        if self.start_time is None:
            return 0.0
        return time.time() - self.start_time
