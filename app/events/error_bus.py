"""Centralized error event bus.

Pipeline stages report non-fatal failures (a corrupt frame, one image that
could not be written, a low disk) here instead of raising, so a UI can show
them without being wired into the capture worker.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels."""

    INFO = "info"
    WARNING = "warning"  # Operation continues
    ERROR = "error"  # Current attempt failed
    CRITICAL = "critical"  # Data may be lost


class ErrorCategory(Enum):
    """Error categories for classification."""

    TRANSFORM = "transform"
    RECORDING = "recording"
    DISK_SPACE = "disk_space"
    ARCHIVE = "archive"
    NETWORK = "network"
    SESSION = "session"
    SYSTEM = "system"


_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class ErrorEvent:
    """Error event with context information."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    source: str
    timestamp: float = field(default_factory=time.time)
    exception: Optional[BaseException] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        exc_info = f" ({self.exception.__class__.__name__})" if self.exception else ""
        return f"[{self.severity.value.upper()}] {self.category.value}/{self.source}: {self.message}{exc_info}"


ErrorCallback = Callable[[ErrorEvent], None]


class ErrorEventBus:
    """Publish-subscribe bus for error events.

    Subscribers run on the publishing thread, outside the bus lock. A failing
    subscriber is logged and does not prevent delivery to the others.
    """

    def __init__(self, max_history: int = 100):
        self._subscribers: Dict[ErrorCategory, List[ErrorCallback]] = {}
        self._all_subscribers: List[ErrorCallback] = []
        self._lock = threading.Lock()
        self._event_history: List[ErrorEvent] = []
        self._max_history = max_history
        self._error_counts: Dict[ErrorCategory, int] = {}

    def subscribe(self, callback: ErrorCallback, category: Optional[ErrorCategory] = None) -> None:
        """Subscribe to error events.

        Args:
            callback: Function to call when error occurs
            category: Specific category to subscribe to, or None for all errors
        """
        with self._lock:
            if category is None:
                self._all_subscribers.append(callback)
            else:
                self._subscribers.setdefault(category, []).append(callback)
        callback_name = getattr(callback, "__name__", repr(callback))
        logger.debug(f"Subscribed {callback_name} to {category.value if category else 'all'} errors")

    def unsubscribe(self, callback: ErrorCallback, category: Optional[ErrorCategory] = None) -> None:
        with self._lock:
            targets = self._all_subscribers if category is None else self._subscribers.get(category, [])
            if callback in targets:
                targets.remove(callback)

    def publish(self, event: ErrorEvent) -> None:
        """Record the event, log it and notify subscribers."""
        with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history.pop(0)
            self._error_counts[event.category] = self._error_counts.get(event.category, 0) + 1

            callbacks = self._subscribers.get(event.category, []).copy() + self._all_subscribers.copy()

        logger.log(_LOG_LEVELS[event.severity], str(event), exc_info=event.exception)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                callback_name = getattr(callback, "__name__", repr(callback))
                logger.error(f"Error in error subscriber {callback_name}: {e}", exc_info=True)

    def get_history(self, category: Optional[ErrorCategory] = None, limit: int = 100) -> List[ErrorEvent]:
        with self._lock:
            history = self._event_history.copy()

        if category is not None:
            history = [e for e in history if e.category == category]

        return history[-limit:]

    def get_error_counts(self) -> Dict[ErrorCategory, int]:
        with self._lock:
            return self._error_counts.copy()

    def clear_history(self) -> None:
        with self._lock:
            self._event_history.clear()
            self._error_counts.clear()


# Global error event bus instance
_error_bus: Optional[ErrorEventBus] = None
_bus_lock = threading.Lock()


def get_error_bus() -> ErrorEventBus:
    """Get global error event bus instance."""
    global _error_bus
    if _error_bus is None:
        with _bus_lock:
            if _error_bus is None:
                _error_bus = ErrorEventBus()
    return _error_bus


def publish_error(
    category: ErrorCategory,
    severity: ErrorSeverity,
    message: str,
    source: str,
    exception: Optional[BaseException] = None,
    **metadata: Any,
) -> None:
    """Convenience function to publish an error event on the global bus.

    Args:
        category: Error category
        severity: Error severity
        message: Error message
        source: Source component
        exception: Optional exception
        **metadata: Additional metadata
    """
    get_error_bus().publish(
        ErrorEvent(
            category=category,
            severity=severity,
            message=message,
            source=source,
            exception=exception,
            metadata=metadata,
        )
    )


__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorEvent",
    "ErrorEventBus",
    "get_error_bus",
    "publish_error",
]
