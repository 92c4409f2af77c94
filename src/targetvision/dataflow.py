"""In-process notification bus for settings and calibration changes.

Handlers run synchronously on the publisher's thread. A failing handler is
logged and does not prevent the remaining handlers from running.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[["OutgoingUIEvent"], None]

ALL_EVENTS = "*"


@dataclass(frozen=True)
class OutgoingUIEvent:
    """A named notification for observers (UI, loggers, persistence).

    Attributes:
        name: Event name, e.g. ``fullsettings`` or ``calibration``.
        data: JSON-friendly payload.
    """

    name: str
    data: Any = None


class DataChangeService:
    """Publish/subscribe by event name.

    Usage:
        service = DataChangeService()
        service.subscribe("fullsettings", on_settings)
        service.publish(OutgoingUIEvent("fullsettings", snapshot))
    """

    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, name: str, handler: Handler) -> None:
        """Register ``handler`` for events called ``name`` (``"*"`` for all)."""
        with self._lock:
            self._subscribers[name].append(handler)
        logger.debug("Subscribed %s to %s", getattr(handler, "__qualname__", handler), name)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(name, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: OutgoingUIEvent) -> None:
        with self._lock:
            handlers = list(self._subscribers.get(event.name, []))
            handlers += self._subscribers.get(ALL_EVENTS, [])

        if not handlers:
            logger.debug("No subscribers for %s", event.name)
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Error in handler %s for %s",
                    getattr(handler, "__qualname__", handler),
                    event.name,
                )

    def subscriber_count(self, name: str) -> int:
        with self._lock:
            return len(self._subscribers.get(name, []))
