"""Thread-safe EventBus for lifecycle notifications.

The EventBus provides a publish-subscribe pattern between the capture/IO
worker and whatever presents session status. Handlers subscribe per event
class and are called synchronously on the publisher's thread.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, List, Type, TypeVar

from app.events.error_bus import ErrorCategory, ErrorSeverity, publish_error
from log_config.logger import get_logger

logger = get_logger(__name__)

EventType = TypeVar("EventType")
EventHandler = Callable[[Any], None]


class EventBus:
    """Thread-safe event bus.

    Thread Safety:
        - subscribe(), unsubscribe() and publish() may be called from any thread
        - Handlers run on the publisher's thread, outside the bus lock
        - A handler that raises is logged; remaining handlers still run

    Example:
        ```python
        bus = EventBus()
        bus.subscribe(SessionProgressEvent, lambda e: bar.set(e.overall_progress))
        ```
    """

    def __init__(self):
        self._subscribers: Dict[Type, List[EventHandler]] = {}
        self._lock = threading.Lock()
        self._event_count: Dict[Type, int] = {}
        self._start_time = time.time()

    def subscribe(self, event_type: Type[EventType], handler: EventHandler) -> None:
        """Register handler for event type."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)
            count = len(self._subscribers[event_type])
        logger.debug(f"Subscribed handler to {event_type.__name__} ({count} total subscribers)")

    def unsubscribe(self, event_type: Type[EventType], handler: EventHandler) -> bool:
        """Unregister handler for event type.

        Returns:
            True if handler was found and removed, False otherwise
        """
        with self._lock:
            try:
                self._subscribers.get(event_type, []).remove(handler)
                return True
            except ValueError:
                return False

    def publish(self, event: Any) -> None:
        """Publish event to all subscribers of its exact type."""
        event_type = type(event)

        with self._lock:
            handlers = self._subscribers.get(event_type, []).copy()
            self._event_count[event_type] = self._event_count.get(event_type, 0) + 1

        failed_handlers = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                failed_handlers += 1
                handler_name = getattr(handler, "__name__", repr(handler))
                logger.opt(exception=e).error(
                    f"Event handler error for {event_type.__name__}: {e.__class__.__name__}: {e}"
                )
                publish_error(
                    category=ErrorCategory.SYSTEM,
                    severity=ErrorSeverity.WARNING,
                    message=f"Event handler failed: {e}",
                    source=f"EventBus.{handler_name}",
                    exception=e,
                    event=event_type.__name__,
                )

        if failed_handlers > 0:
            logger.warning(f"{failed_handlers}/{len(handlers)} handlers failed for {event_type.__name__}")

    def get_subscriber_count(self, event_type: Type[EventType]) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def get_stats(self) -> Dict[str, Any]:
        """Get event bus statistics (subscriptions, publish counts, uptime)."""
        with self._lock:
            return {
                "event_types": len(self._subscribers),
                "total_subscribers": sum(len(handlers) for handlers in self._subscribers.values()),
                "event_counts": {
                    event_type.__name__: count for event_type, count in self._event_count.items()
                },
                "uptime_seconds": time.time() - self._start_time,
            }

    def clear_all_subscribers(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._event_count.clear()

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (f"EventBus(event_types={stats['event_types']}, "
                f"subscribers={stats['total_subscribers']}, "
                f"uptime={stats['uptime_seconds']:.1f}s)")
