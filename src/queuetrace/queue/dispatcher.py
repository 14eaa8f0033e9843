"""In-process dispatcher for queue lifecycle events.

The host queue system announces job lifecycle transitions through this
dispatcher; integrations register listeners for the event types they care
about. Listeners run synchronously in the dispatching thread or task, in the
order they were registered.
"""

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


def get_listener_name(listener: Any) -> str:
    """
    Get a descriptive name for a listener for logging and debugging.

    Args:
        listener: Any callable (bound method, function, lambda, callable object)

    Returns:
        String name for the listener
    """
    if hasattr(listener, "__qualname__"):
        return str(listener.__qualname__)
    if hasattr(listener, "__name__"):
        return str(listener.__name__)
    return type(listener).__name__


class EventDispatcher:
    """
    Synchronous in-process event dispatcher.

    Features:
    - Thread-safe listener registration
    - Listeners keyed by exact event class
    - Error isolation (a failing listener doesn't stop the others)

    Example:
        >>> dispatcher = EventDispatcher()
        >>> dispatcher.listen(JobProcessed, lambda event: print(event.job))
        >>> dispatcher.dispatch(JobProcessed(connection_name="memory", job=job))

    Thread Safety:
        - Registration methods (listen, forget) are thread-safe
        - Dispatching takes a snapshot of the listeners, so listeners may
          register or remove listeners while an event is being dispatched
    """

    def __init__(self) -> None:
        self._listeners: dict[type, list[Listener]] = defaultdict(list)
        self._lock = threading.RLock()
        self._stats = {
            "events_dispatched": 0,
            "listeners_invoked": 0,
            "listener_errors": 0,
        }

    def listen(self, event_type: type, listener: Listener) -> None:
        """
        Register a listener for an event type.

        Args:
            event_type: The event class to listen for
            listener: Callable receiving the event
        """
        with self._lock:
            self._listeners[event_type].append(listener)

        logger.debug(
            f"Registered listener {get_listener_name(listener)} for {event_type.__name__}",
            extra={
                "listener": get_listener_name(listener),
                "event_type": event_type.__name__,
            },
        )

    def forget(self, event_type: type, listener: Listener | None = None) -> int:
        """
        Remove listeners for an event type.

        Args:
            event_type: The event class
            listener: The listener to remove. When None, every listener for
                the event type is removed.

        Returns:
            Number of listeners removed
        """
        with self._lock:
            listeners = self._listeners.get(event_type, [])
            if listener is None:
                removed = len(listeners)
                listeners.clear()
            else:
                remaining = [registered for registered in listeners if registered != listener]
                removed = len(listeners) - len(remaining)
                listeners[:] = remaining

        if removed:
            logger.debug(
                f"Removed {removed} listener(s) for {event_type.__name__}",
                extra={"event_type": event_type.__name__, "removed": removed},
            )
        return removed

    def has_listeners(self, event_type: type) -> bool:
        with self._lock:
            return bool(self._listeners.get(event_type))

    def get_listener_count(self, event_type: type | None = None) -> int:
        """
        Get the number of registered listeners.

        Args:
            event_type: If provided, count listeners for this event type only

        Returns:
            Number of registered listeners
        """
        with self._lock:
            if event_type is None:
                return sum(len(listeners) for listeners in self._listeners.values())
            return len(self._listeners.get(event_type, []))

    def dispatch(self, event: Any) -> None:
        """
        Dispatch an event to every listener registered for its class.

        Listener exceptions are logged and do not prevent other listeners
        from running.

        Args:
            event: The event to dispatch
        """
        event_type = type(event)

        with self._lock:
            listeners = list(self._listeners.get(event_type, []))

        self._stats["events_dispatched"] += 1

        if not listeners:
            logger.debug(
                f"No listeners registered for event type: {event_type.__name__}",
                extra={"event_type": event_type.__name__},
            )
            return

        for listener in listeners:
            self._safe_invoke(listener, event)

    def _safe_invoke(self, listener: Listener, event: Any) -> None:
        """
        Safely invoke a listener, catching and logging exceptions.

        Args:
            listener: The listener to call
            event: The event to pass
        """
        try:
            listener(event)
            self._stats["listeners_invoked"] += 1
        except Exception as e:
            self._stats["listener_errors"] += 1
            logger.error(
                f"Listener {get_listener_name(listener)} failed handling "
                f"{type(event).__name__}: {e}",
                exc_info=True,
                extra={
                    "listener": get_listener_name(listener),
                    "event_type": type(event).__name__,
                    "error": str(e),
                },
            )

    def get_stats(self) -> dict[str, int]:
        """
        Get statistics about dispatcher operation.

        Returns:
            Dictionary with counts:
            - events_dispatched: Total events dispatched
            - listeners_invoked: Total successful listener invocations
            - listener_errors: Total listener errors
        """
        return dict(self._stats)

    def clear_listeners(self) -> None:
        """Remove every listener. Useful for testing or reinitialization."""
        with self._lock:
            self._listeners.clear()

        logger.info("All queue event listeners cleared")


__all__ = ["EventDispatcher", "Listener", "get_listener_name"]
