"""Feed poller configuration."""

from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Mapping, Optional

from .decoder import FeedDecoder, resolve_schema
from .exceptions import ConfigError
from .models import FeedMessage

DEFAULT_RETRY_INTERVAL_SECONDS = 1
DEFAULT_MAX_RETRIES = 7
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10

# Names accepted from external configuration -> PollerConfig fields
KEY_ALIASES = {
    "sourceURL": "source_url",
    "feedURL": "source_url",
    "feed_url": "source_url",
    "pollIntervalSeconds": "poll_interval_seconds",
    "readInterval": "poll_interval_seconds",
    "retryIntervalSeconds": "retry_interval_seconds",
    "retryInterval": "retry_interval_seconds",
    "maxRetries": "max_retries",
    "requestTimeoutSeconds": "request_timeout_seconds",
    "decoderSchemaPath": "decoder_schema",
}


@dataclass
class PollerConfig:
    """Settings for one FeedPoller."""
    source_url: Optional[str] = None
    poll_interval_seconds: Optional[float] = None
    decoder: Optional[Callable[[bytes], FeedMessage]] = None
    retry_interval_seconds: float = DEFAULT_RETRY_INTERVAL_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS

    def validate(self) -> "PollerConfig":
        """
        Check the configuration.

        Returns:
            self, so calls can be chained.

        Raises:
            ConfigError: If a required setting is missing or a value is out of range.
        """
        if not self.source_url:
            raise ConfigError("A feed poller requires a source_url (include any API key)")
        if self.decoder is None:
            raise ConfigError("A feed poller requires a decoder")
        if not callable(self.decoder):
            raise ConfigError(f"The decoder must be callable, got {self.decoder!r}")
        if not _is_positive_number(self.poll_interval_seconds):
            raise ConfigError(
                f"poll_interval_seconds must be a number > 0, got {self.poll_interval_seconds!r}"
            )
        if not _is_positive_number(self.retry_interval_seconds):
            raise ConfigError(
                f"retry_interval_seconds must be a number > 0, got {self.retry_interval_seconds!r}"
            )
        if not _is_positive_number(self.request_timeout_seconds):
            raise ConfigError(
                f"request_timeout_seconds must be a number > 0, got {self.request_timeout_seconds!r}"
            )
        if isinstance(self.max_retries, bool) or not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigError(f"max_retries must be an integer >= 0, got {self.max_retries!r}")
        return self

    @classmethod
    def from_mapping(
        cls,
        options: Mapping[str, Any],
        base: Optional["PollerConfig"] = None,
    ) -> "PollerConfig":
        """
        Build a configuration from a mapping of options.

        Args:
            options: snake_case field names or their camelCase aliases
                (sourceURL, pollIntervalSeconds, retryIntervalSeconds, maxRetries,
                decoderSchemaPath). A decoder_schema builds a FeedDecoder when no
                decoder is given.
            base: Existing configuration whose values are kept for keys not in options.

        Returns:
            A validated PollerConfig.

        Raises:
            ConfigError: On unknown keys or invalid values.
        """
        if options is None:
            raise ConfigError("Configuration options are required")

        known = {f.name for f in fields(cls)}
        changes = {}
        schema = None

        for key, value in options.items():
            name = KEY_ALIASES.get(key, key)
            if name == "decoder_schema":
                schema = value
            elif name in known:
                changes[name] = value
            else:
                raise ConfigError(f"Unknown configuration option: {key}")

        if schema is not None and changes.get("decoder") is None:
            message_class = resolve_schema(schema) if isinstance(schema, str) else schema
            changes["decoder"] = FeedDecoder(message_class)

        config = replace(base, **changes) if base is not None else cls(**changes)
        return config.validate()


def _is_positive_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
