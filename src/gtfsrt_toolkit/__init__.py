"""gtfsrt_toolkit - Polls GTFS-Realtime feeds and indexes each snapshot by trip, route and stop."""

__version__ = "0.1.0"

from .config import PollerConfig
from .decoder import FeedDecoder, decode_feed_message
from .events import EventType, ToolkitEvent, ToolkitEventEmitter
from .exceptions import (
    ConfigError,
    DecodeError,
    InvalidListener,
    ListenerError,
    OrderingViolation,
    ToolkitError,
    TransportError,
)
from .feed_poller import FeedPoller, PollerState, PollerStateSnapshot
from .gtfs_schedule import GTFSScheduleProvider
from .indexers import IndexBuilder, build_indices
from .models import FeedMessage
from .wrapper import QueryView
from . import time_utils

__all__ = [
    "FeedPoller",
    "PollerConfig",
    "PollerState",
    "PollerStateSnapshot",
    "FeedDecoder",
    "decode_feed_message",
    "IndexBuilder",
    "build_indices",
    "QueryView",
    "GTFSScheduleProvider",
    "FeedMessage",
    "EventType",
    "ToolkitEvent",
    "ToolkitEventEmitter",
    "ToolkitError",
    "ConfigError",
    "InvalidListener",
    "TransportError",
    "DecodeError",
    "OrderingViolation",
    "ListenerError",
    "time_utils",
]
