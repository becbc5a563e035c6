"""Structured notifications emitted by feed pollers."""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Kinds of toolkit events."""
    FEED_READER_STARTED = "FEED_READER_STARTED"
    FEED_READER_STOPPED = "FEED_READER_STOPPED"
    FEED_READER_SUCCESSFUL_READ = "FEED_READER_SUCCESSFUL_READ"
    ERROR = "ERROR"
    DATA_ANOMALY = "DATA_ANOMALY"


_LOG_LEVELS = {
    EventType.FEED_READER_STARTED: logging.INFO,
    EventType.FEED_READER_STOPPED: logging.INFO,
    EventType.FEED_READER_SUCCESSFUL_READ: logging.DEBUG,
    EventType.ERROR: logging.WARNING,
    EventType.DATA_ANOMALY: logging.WARNING,
}


@dataclass
class ToolkitEvent:
    """A notification about a poller's activity."""
    type: EventType
    source_url: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)  # Unix timestamp

    def describe(self) -> str:
        details = ", ".join(f"{key}={value}" for key, value in self.payload.items())
        return f"{self.type.value} [{self.source_url}] {details}".rstrip()


EventHandler = Callable[[ToolkitEvent], Any]


class ToolkitEventEmitter:
    """
    Fans events out to subscribed handlers.

    Every event is also written to the log, so an emitter without subscribers
    still leaves a trace of what the poller did.
    """

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: EventHandler) -> None:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def emit(self, event: ToolkitEvent) -> None:
        """Log the event and pass it to every handler."""
        logger.log(_LOG_LEVELS.get(event.type, logging.INFO), event.describe())

        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Event handler {handler!r} failed on {event.type.value}")
