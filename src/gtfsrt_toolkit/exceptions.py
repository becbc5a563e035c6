"""Errors raised and reported by the toolkit."""

from typing import Any, Callable, Optional

EXCERPT_LENGTH = 64


class ToolkitError(Exception):
    """Base class for every toolkit error."""


class ConfigError(ToolkitError):
    """Invalid or missing configuration. Never retried."""


class InvalidListener(ToolkitError, TypeError):
    """A listener that cannot be called was registered."""


class TransportError(ToolkitError):
    """The feed could not be fetched at the network layer."""


class DecodeError(ToolkitError):
    """The fetched bytes could not be turned into a FeedMessage."""

    def __init__(self, message: str, payload: Optional[bytes] = None):
        super().__init__(message)
        self.payload = payload

    @property
    def excerpt(self) -> Optional[str]:
        """Short printable slice of the offending payload."""
        if not self.payload:
            return None
        excerpt = repr(self.payload[:EXCERPT_LENGTH])
        if len(self.payload) > EXCERPT_LENGTH:
            excerpt += f"... ({len(self.payload)} bytes)"
        return excerpt


class OrderingViolation(ToolkitError):
    """A decoded message is not newer than the last accepted message."""

    def __init__(self, previous_timestamp: int, timestamp: int):
        super().__init__(
            "GTFS-Realtime message is not newer than the previously accepted message "
            f"(previous timestamp: {previous_timestamp}, current timestamp: {timestamp})"
        )
        self.previous_timestamp = previous_timestamp
        self.timestamp = timestamp


class ListenerError(ToolkitError):
    """A registered listener raised while handling a feed update."""

    def __init__(self, listener: Callable[..., Any], cause: BaseException):
        name = getattr(listener, "__qualname__", None) or repr(listener)
        super().__init__(f"Uncaught error in feed listener {name}: {cause!r}")
        self.listener = listener
        self.cause = cause
