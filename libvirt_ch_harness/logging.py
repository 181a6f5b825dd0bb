"""
Loguru configuration for libvirt-ch-harness.

Provides:
- console and optional file output
- per-test context binding (VM name, numeric id)
- a timing decorator for slow harness steps (daemon start, boot waits)

Daemon and CLI output captured by the orchestrator goes through the same
handlers, so a failing test's log holds everything needed to debug it.
"""

import functools
import sys
import time
from typing import Any, Callable, List

from loguru import logger

from .config import Config

# Console format used at DEBUG level
DEFAULT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> | "
    "<level>{message}</level>"
)

# Plain format for files and non-debug consoles
PRODUCTION_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS ZZ} | "
    "{level: <8} | "
    "{extra[name]}:{function}:{line} | "
    "{message}"
)


class LoggingManager:
    """Owns the loguru handlers installed for one harness run."""

    def __init__(self, config: Config):
        self.config = config
        self._handler_ids: List[int] = []

    def setup_logging(self) -> None:
        """Install console and file handlers."""
        logger.remove()
        # records not logged through get_logger still need extra[name]
        logger.configure(extra={"name": "libvirt_ch_harness"})

        self._add_console_handler()
        self._add_file_handler()

    def _add_console_handler(self) -> None:
        is_debug = self.config.logging.level in ("DEBUG", "TRACE")
        console_format = DEFAULT_FORMAT if is_debug else PRODUCTION_FORMAT

        handler_id = logger.add(
            sys.stderr,
            format=console_format,
            level=self.config.logging.level,
            colorize=True,
            backtrace=is_debug,
            diagnose=is_debug,
            enqueue=True,  # tests may log from several threads
            catch=True
        )
        self._handler_ids.append(handler_id)

    def _add_file_handler(self) -> None:
        if not self.config.logging.file:
            return

        handler_id = logger.add(
            self.config.logging.file,
            format=PRODUCTION_FORMAT,
            level=self.config.logging.level,
            rotation=self.config.logging.rotation,
            retention=self.config.logging.retention,
            backtrace=True,
            diagnose=False,
            enqueue=True,
            catch=True
        )
        self._handler_ids.append(handler_id)

    def cleanup(self) -> None:
        """Remove the handlers installed by this manager."""
        for handler_id in self._handler_ids:
            try:
                logger.remove(handler_id)
            except ValueError:
                # already removed
                pass
        self._handler_ids.clear()


def get_logger(name: str) -> Any:
    """
    Get a logger bound to a module name.

    Args:
        name: module name, usually __name__

    Returns:
        loguru logger with ``name`` bound
    """
    return logger.bind(name=name)


def configure_logging(config: Config) -> LoggingManager:
    """Configure logging for a harness run and return its manager."""
    logging_manager = LoggingManager(config)
    logging_manager.setup_logging()
    return logging_manager


class LogContext:
    """Bind structured data (e.g. a test's VM name) to log records."""

    def __init__(self, **context_data):
        self.context_data = context_data
        self.bound_logger = None

    def __enter__(self):
        self.bound_logger = logger.bind(**self.context_data)
        return self.bound_logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.bound_logger = None


def log_performance(threshold_ms: float = 1000.0, level: str = "DEBUG"):
    """
    Log how long the wrapped function took.

    Args:
        threshold_ms: durations above this are logged as warnings
        level: log level for durations below the threshold
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            func_logger = get_logger(func.__module__)
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                func_logger.error(
                    "❌ {}() failed after {:.2f}ms with {}: {}",
                    func.__name__,
                    duration_ms,
                    type(e).__name__,
                    str(e)
                )
                raise

            duration_ms = (time.perf_counter() - start_time) * 1000
            if duration_ms > threshold_ms:
                func_logger.warning(
                    "⚠️ {}() took {:.2f}ms (threshold: {:.2f}ms)",
                    func.__name__,
                    duration_ms,
                    threshold_ms
                )
            else:
                func_logger.log(level, "⏱️ {}() took {:.2f}ms", func.__name__, duration_ms)

            return result

        return wrapper
    return decorator
