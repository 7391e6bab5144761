"""
============================================================================
MODEL VITALS - LOGGING UTILITY
============================================================================
Loguru-based logging with a console sink and an optional rotating file.
Nothing is configured at import time; call setup_logging() once at startup.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import sys
import time
import inspect
from functools import wraps
from typing import Optional

from loguru import logger

from config.settings import LoggingSettings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]} - {message}"


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(config: Optional[LoggingSettings] = None) -> None:
    """
    Configure loguru sinks.

    Args:
        config: Logging settings (read from the environment if omitted)
    """
    config = config or LoggingSettings()

    # Remove default loguru handler
    logger.remove()
    logger.configure(extra={"name": "ModelVitals"})

    # Console Handler
    if config.json_format:
        logger.add(
            sys.stderr,
            level=config.level,
            serialize=True,
            backtrace=False,
            diagnose=False,
        )
    else:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=config.level,
            colorize=config.colorize,
            backtrace=True,
            diagnose=False,
        )

    # File Handler
    if config.file_path:
        config.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            config.file_path,
            format=FILE_FORMAT,
            level=config.level,
            rotation=config.file_rotation,
            retention=config.file_retention,
            compression="zip",
            serialize=config.json_format,
            enqueue=True,
        )

    logger.bind(name="Logging").debug(
        f"Logging system initialized (level={config.level}, "
        f"json={config.json_format}, file={config.file_path})"
    )


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Component name shown in every record

    Returns:
        Logger instance
    """
    return logger.bind(name=name or "ModelVitals")


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """
    Decorator to log coroutine execution time at DEBUG level.

    Args:
        func: Coroutine function to decorate

    Returns:
        Decorated function
    """
    timing_logger = get_logger("Timing")

    @wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.monotonic()
        try:
            return await func(*args, **kwargs)
        finally:
            timing_logger.debug(
                f"{func.__qualname__} took {time.monotonic() - start_time:.3f}s"
            )

    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"{func.__qualname__} is not a coroutine function")
    return wrapper
