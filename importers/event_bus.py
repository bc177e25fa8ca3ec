"""In-process event bus used to announce committed pages."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

PAGES_CREATED = "pages.created"

Subscriber = Callable[[Dict[str, Any]], object]


@dataclass(frozen=True)
class DispatchError:
    """A subscriber failure captured without interrupting the publisher."""

    event_name: str
    subscriber: str
    error_type: str
    message: str


class EventBus:
    """Synchronous publish/subscribe keyed by event name."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('confluence_space_importer.importers.event_bus')
        self._subscribers: Dict[str, List[Subscriber]] = {}
        self._lock = threading.RLock()

    def subscribe(self, event_name: str, callback: Subscriber) -> None:
        if not callable(callback):
            raise ValueError("callback must be callable")
        with self._lock:
            self._subscribers.setdefault(event_name, []).append(callback)

    def unsubscribe(self, event_name: str, callback: Subscriber) -> bool:
        """Remove a callback. Returns True when it was subscribed."""
        with self._lock:
            callbacks = self._subscribers.get(event_name, [])
            if callback in callbacks:
                callbacks.remove(callback)
                return True
            return False

    def emit(self, event_name: str, payload: Dict[str, Any]) -> List[DispatchError]:
        """
        Deliver an event to every subscriber of ``event_name``.

        Subscriber exceptions are logged and returned, never raised.

        Args:
            event_name: Name such as PAGES_CREATED
            payload: Event data

        Returns:
            Failures of individual subscribers
        """
        with self._lock:
            callbacks = tuple(self._subscribers.get(event_name, ()))

        errors: List[DispatchError] = []
        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                name = getattr(callback, '__qualname__', repr(callback))
                self.logger.error(f"Subscriber {name} failed handling {event_name}: {str(e)}")
                errors.append(DispatchError(
                    event_name=event_name,
                    subscriber=name,
                    error_type=type(e).__name__,
                    message=str(e)
                ))

        self.logger.debug(f"Emitted {event_name} to {len(callbacks)} subscribers")
        return errors


__all__ = ['DispatchError', 'EventBus', 'PAGES_CREATED']
