"""Centralized logging configuration for survival explanations.

This module provides the logging setup shared by every analysis:
- Console plus file logging under one package logger ("survival_explain")
- Separate performance log for timing and model-performance metrics
- Warning categorization for noisy model libraries (lifelines, numpy, sksurv)
- Progress tracking for per-variable loops

Example:
    >>> from survival_explain.logging_config import setup_logging, log_performance
    >>> logger = setup_logging(run_type="sample", log_level=logging.INFO)
    >>> logger.info("Building explainers")
    >>> log_performance(logger, "Model performance", label="cox_ph", ibs=0.12)
"""
import logging
import sys
import warnings
from pathlib import Path
from datetime import datetime
from typing import Optional, Literal
from contextlib import contextmanager


RunType = Literal["sample", "production"]

LOGGER_NAME = "survival_explain"


class PerformanceFilter(logging.Filter):
    """Filter to capture only performance-related messages.

    Messages tagged with 'is_performance' attribute will pass through.
    """

    def filter(self, record):
        return getattr(record, 'is_performance', False)


class WarningErrorFilter(logging.Filter):
    """Filter to capture only warnings and errors."""

    def filter(self, record):
        return record.levelno >= logging.WARNING


def setup_logging(
    run_type: RunType = "sample",
    log_level: int = logging.INFO,
    console_output: bool = True,
    log_dir: Optional[str] = None
) -> logging.Logger:
    """Setup logging for an explanation run.

    Creates log files in ``log_dir`` (default ``data/outputs/{run_type}/logs``):
    - main_{timestamp}.log: All log messages
    - performance_{timestamp}.log: Timing and metric records only
    - warnings_{timestamp}.log: Warnings and errors only

    Args:
        run_type: Type of run (sample/production) - determines log directory
        log_level: Minimum console log level
        console_output: Whether to output logs to console (default: True)
        log_dir: Override for the log directory

    Returns:
        Configured package logger "survival_explain"
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_path = Path(log_dir) if log_dir is not None else Path(f"data/outputs/{run_type}/logs")
    log_path.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture everything, filter at handlers

    # Repeated setup in one process must not duplicate output
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()
    logger.propagate = False

    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    performance_formatter = logging.Formatter(
        fmt='%(asctime)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    simple_formatter = logging.Formatter(fmt='%(levelname)-8s | %(message)s')

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(simple_formatter)
        logger.addHandler(console_handler)

    main_handler = logging.FileHandler(
        log_path / f"main_{timestamp}.log", mode='w', encoding='utf-8'
    )
    main_handler.setLevel(logging.DEBUG)
    main_handler.setFormatter(detailed_formatter)
    logger.addHandler(main_handler)

    perf_handler = logging.FileHandler(
        log_path / f"performance_{timestamp}.log", mode='w', encoding='utf-8'
    )
    perf_handler.setLevel(logging.INFO)
    perf_handler.setFormatter(performance_formatter)
    perf_handler.addFilter(PerformanceFilter())
    logger.addHandler(perf_handler)

    warning_handler = logging.FileHandler(
        log_path / f"warnings_{timestamp}.log", mode='w', encoding='utf-8'
    )
    warning_handler.setLevel(logging.WARNING)
    warning_handler.setFormatter(detailed_formatter)
    warning_handler.addFilter(WarningErrorFilter())
    logger.addHandler(warning_handler)

    logger.info(f"Logging initialized for {run_type} run")
    logger.info(f"Log directory: {log_path.absolute()}")

    return logger


def log_performance(logger: logging.Logger, message: str, **kwargs):
    """Log a performance-related message with timing or metric data.

    Args:
        logger: Logger instance
        message: Performance message description
        **kwargs: Additional context (duration, metrics, sizes)

    Example:
        >>> log_performance(logger, "Variable response", label="rsf",
        ...                 n_variables=6, duration_sec=3.1)
        # Output: "Variable response | label=rsf | n_variables=6 | duration_sec=3.1"
    """
    if kwargs:
        metrics_str = " | ".join(f"{k}={v}" for k, v in kwargs.items())
        full_message = f"{message} | {metrics_str}"
    else:
        full_message = message

    logger.info(full_message, extra={'is_performance': True})


class WarningLogger:
    """Captures warnings and categorizes them for analysis.

    Categories:
    - convergence: Model convergence issues (lifelines, sksurv Cox)
    - numerical: Overflow, underflow, invalid values in predictions
    - data: Unknown categories or missing values met while perturbing inputs
    - other: Uncategorized warnings
    """

    WARNING_CATEGORIES = {
        'convergence': ['ConvergenceWarning', 'did not converge', 'maximum iterations'],
        'numerical': ['overflow', 'underflow', 'invalid value', 'divide by zero'],
        'data': ['unknown categories', 'missing values', 'found unknown'],
    }

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.warning_counts = {cat: 0 for cat in self.WARNING_CATEGORIES}
        self.warning_counts['other'] = 0

    def categorize_warning(self, message: str) -> str:
        """Categorize a warning message based on keywords.

        Args:
            message: Warning message text

        Returns:
            Category name (convergence, numerical, data, other)
        """
        message_lower = message.lower()
        for category, keywords in self.WARNING_CATEGORIES.items():
            if any(kw.lower() in message_lower for kw in keywords):
                return category
        return 'other'

    def log_warning(self, message: str, category: Optional[str] = None):
        """Log a warning with category tag."""
        if category is None:
            category = self.categorize_warning(message)

        self.warning_counts[category] += 1
        self.logger.warning(f"[{category.upper()}] {message}")

    def summary(self) -> dict:
        """Return {category: count} for categories with warnings."""
        return {k: v for k, v in self.warning_counts.items() if v > 0}


@contextmanager
def capture_warnings(logger: logging.Logger):
    """Context manager to capture and log warnings from model libraries.

    Args:
        logger: Logger instance

    Yields:
        WarningLogger instance for accessing warning counts

    Example:
        >>> with capture_warnings(logger) as warning_logger:
        ...     model_profile(explainer)
        >>> print(warning_logger.summary())
        {'numerical': 2}
    """
    warning_logger = WarningLogger(logger)

    def warning_handler(message, category, filename, lineno, file=None, line=None):
        warning_logger.log_warning(f"{category.__name__}: {message}")

    old_showwarning = warnings.showwarning
    warnings.showwarning = warning_handler

    try:
        yield warning_logger
    finally:
        warnings.showwarning = old_showwarning

        summary = warning_logger.summary()
        if summary:
            summary_str = ", ".join(f"{k}={v}" for k, v in summary.items())
            logger.info(f"Warning summary: {summary_str}")


class ProgressLogger:
    """Logs progress updates for iterations.

    Example:
        >>> progress = ProgressLogger(logger, total=6, desc="Ceteris paribus")
        >>> for variable in variables:
        ...     progress.update(1, metrics={'variable': variable})
        # Output: "Ceteris paribus: 1/6 (16.7%) | variable=karno"
    """

    def __init__(
        self,
        logger: logging.Logger,
        total: int,
        desc: str,
        log_interval: int = 1
    ):
        self.logger = logger
        self.total = total
        self.desc = desc
        self.log_interval = log_interval
        self.current = 0

    def update(self, n: int = 1, metrics: Optional[dict] = None):
        """Update progress by n steps.

        Args:
            n: Number of steps to advance (default: 1)
            metrics: Optional dict of values to include in log message
        """
        self.current += n

        if self.current % self.log_interval == 0 or self.current == self.total:
            pct = (self.current / self.total) * 100 if self.total else 100.0
            msg = f"{self.desc}: {self.current}/{self.total} ({pct:.1f}%)"

            if metrics:
                metrics_str = ", ".join(f"{k}={v:.4f}" if isinstance(v, float) else f"{k}={v}"
                                        for k, v in metrics.items())
                msg += f" | {metrics_str}"

            self.logger.debug(msg)
