"""Standardized error handling and performance utilities.

This module provides:
1. Consistent error formatting for row-level failures and worker threads
2. Performance timing decorator for profiling hot paths
3. Structured context logging for errors

Usage in QThread workers:
    from utils.error_handling import handle_worker_error

    class MyWorker(QThread):
        error = pyqtSignal(str)

        def run(self):
            try:
                # ... do work ...
            except Exception as e:
                error_msg = handle_worker_error(e, "Import failed", self.file_path)
                self.error.emit(error_msg)

Performance timing usage:
    from utils.error_handling import timed

    @timed
    def expensive_operation():
        ...

    # Enable timing with: XLIMPORT_PERF_DEBUG=1
"""

from __future__ import annotations

import logging
import os
import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

# Environment variable to enable performance timing
PERF_DEBUG = os.environ.get("XLIMPORT_PERF_DEBUG", "0") == "1"

F = TypeVar("F", bound=Callable[..., Any])


def timed(func: F) -> F:
    """Decorator to log execution time of functions.

    Only active when XLIMPORT_PERF_DEBUG=1 environment variable is set.
    Logs timing at DEBUG level to avoid noise in production.
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not PERF_DEBUG:
            return func(*args, **kwargs)

        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
            elapsed = time.perf_counter() - start
            logger.debug(f"PERF: {func.__module__}.{func.__name__} took {elapsed:.3f}s")
            return result
        except Exception:
            elapsed = time.perf_counter() - start
            logger.debug(f"PERF: {func.__module__}.{func.__name__} failed after {elapsed:.3f}s")
            raise

    return wrapper  # type: ignore


class TimingContext:
    """Context manager for timing code blocks.

    Only active when XLIMPORT_PERF_DEBUG=1 environment variable is set.

    Example:
        with TimingContext("preflight"):
            target.check(configuration)
    """

    def __init__(self, name: str):
        self.name = name
        self.start: float = 0

    def __enter__(self) -> "TimingContext":
        if PERF_DEBUG:
            self.start = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if PERF_DEBUG:
            elapsed = time.perf_counter() - self.start
            status = "failed" if exc_val else "completed"
            logger.debug(f"PERF: {self.name} {status} in {elapsed:.3f}s")


def format_error_message(
    error: BaseException,
    context: Optional[str] = None,
    include_type: bool = True,
) -> str:
    """Format an exception into a user-friendly message.

    Args:
        error: The exception that occurred
        context: Optional context describing what was being done
        include_type: Whether to include the exception type name

    Returns:
        Formatted error message suitable for display to users
    """
    error_str = str(error)

    # Handle empty error messages
    if not error_str or error_str == "None":
        error_str = type(error).__name__
        include_type = False

    parts = []
    if context:
        parts.append(context)

    if include_type:
        parts.append(f"{type(error).__name__}: {error_str}")
    else:
        parts.append(error_str)

    return " - ".join(parts) if len(parts) > 1 else parts[0]


def database_error_text(error: BaseException) -> str:
    """Return the driver's message for a SQLAlchemy error, without the SQL echo.

    SQLAlchemy appends the statement and a documentation link to ``str(exc)``;
    row error reports keep only the first line the engine produced.
    """
    original = getattr(error, "orig", None)
    text = str(original) if original is not None else str(error)
    first_line = text.strip().splitlines()[0] if text.strip() else ""
    return first_line or type(error).__name__


def log_exception(
    error: BaseException,
    context: str,
    extra: Optional[dict] = None,
    level: int = logging.ERROR,
) -> None:
    """Log an exception with structured context.

    Uses exc_info so the full traceback lands in the structured log file,
    but doesn't print to stdout.
    """
    log_extra = {"event": "error", "error_type": type(error).__name__}
    if extra:
        log_extra.update(extra)

    logger.log(level, f"{context}: {error}", extra=log_extra, exc_info=error)


def handle_worker_error(
    error: BaseException,
    context: str,
    *args: Any,
) -> str:
    """Handle an error in a worker thread.

    Logs the exception with context and returns a user-friendly message.
    This is the recommended pattern for QThread workers.

    Args:
        error: The exception that occurred
        context: Description of what was being done (e.g., "Import failed")
        *args: Additional context items to include in log (e.g., file_path)

    Returns:
        Formatted error message suitable for emitting via error signal
    """
    extra = {}
    for i, arg in enumerate(args):
        extra[f"context_{i}"] = str(arg)

    log_exception(error, context, extra)

    return format_error_message(error, context)
