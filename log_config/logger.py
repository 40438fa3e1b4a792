"""Centralized logging configuration using loguru."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

# Remove default handler
logger.remove()

# Console handler with INFO level
logger.add(
    sys.stderr,
    level="INFO",
    format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    colorize=True,
)

_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
_file_sinks: List[int] = []


def configure_file_logging(logs_dir: Path) -> Path:
    """Add rotating file sinks under ``logs_dir``.

    Calling it again replaces the sinks from the previous call.

    Args:
        logs_dir: Directory that receives the log files

    Returns:
        The resolved log directory
    """
    for sink_id in _file_sinks:
        logger.remove(sink_id)
    _file_sinks.clear()

    logs_dir = Path(logs_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    _file_sinks.append(
        logger.add(
            logs_dir / "scenelogger_{time}.log",
            rotation="50 MB",
            retention="10 days",
            level="DEBUG",
            format=_FILE_FORMAT,
            enqueue=True,  # Thread-safe logging
        )
    )
    # Error-only file
    _file_sinks.append(
        logger.add(
            logs_dir / "errors_{time}.log",
            rotation="10 MB",
            retention="30 days",
            level="ERROR",
            format=_FILE_FORMAT,
            enqueue=True,
        )
    )
    return logs_dir


def get_logger(name: Optional[str] = None):
    """Get a logger instance with the given name.

    Args:
        name: Module name for the logger (usually __name__)

    Returns:
        Configured logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


def log_performance(operation: str, duration_ms: float, threshold_ms: float = 100.0) -> None:
    """Log performance metrics with warnings for slow operations.

    Args:
        operation: Description of the operation
        duration_ms: Duration in milliseconds
        threshold_ms: Threshold for warning (default: 100ms)
    """
    if duration_ms > threshold_ms:
        logger.warning(f"Slow operation: {operation} took {duration_ms:.2f}ms (threshold: {threshold_ms}ms)")
    else:
        logger.debug(f"Performance: {operation} took {duration_ms:.2f}ms")


__all__ = ["logger", "get_logger", "configure_file_logging", "log_performance"]
