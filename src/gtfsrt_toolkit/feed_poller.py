"""
Reads a GTFS-Realtime feed on an interval and hands each new snapshot to listeners.

Create one FeedPoller per feed source and register listeners on it. The
poller starts fetching when the first listener is registered and stops when
the last one is removed, so no requests reach the feed source while nobody
is listening. Every accepted snapshot is indexed once and delivered to each
listener as a QueryView.
"""

import logging
import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from typing import Any, Callable, List, Mapping, Optional, Union

from .config import PollerConfig
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
from .models import FeedMessage, ScheduleProvider
from .timers import ThreadingScheduler
from .transport import RequestsTransport
from .wrapper import QueryView

logger = logging.getLogger(__name__)

# The watchdog fires when no fetch outcome was seen for this many poll intervals
WATCHDOG_INTERVALS = 2

Listener = Callable[[QueryView], Any]


class PollerState(str, Enum):
    """Control states of a FeedPoller."""
    STOPPED = "Stopped"
    POLLING = "Polling"
    RETRYING = "Retrying"
    WATCHDOG_TRIGGERED = "Watchdog-triggered"


@dataclass(frozen=True)
class PollerStateSnapshot:
    """Diagnostic view of a poller's configuration and control state."""
    state: PollerState
    source_url: Optional[str]
    poll_interval_seconds: Optional[float]
    retry_interval_seconds: Optional[float]
    max_retries: Optional[int]
    retry_counter: int
    listener_count: int
    previous_timestamp: Optional[int]
    last_successful_read: Optional[float]  # Unix timestamp
    fetch_in_flight: bool
    restarts: int


class FeedPoller:
    """
    Polls one feed source and dispatches QueryViews to registered listeners.

    Control flow:
    - Each poll tick cancels pending retries and fetches.
    - A failed fetch, an undecodable payload or a snapshot that is not newer
      than the last accepted one arms a retry timer (unless one is already
      armed). After max_retries attempts the poller waits for the next poll.
    - A watchdog restarts polling on a fresh connection when no fetch outcome
      was seen for two poll intervals, which is what a hung socket looks like.

    Every timer callback and fetch carries the generation it was started in.
    Stopping or restarting starts a new generation, so timers that fire late
    and responses that arrive late are ignored.
    """

    def __init__(
        self,
        config: Optional[Union[PollerConfig, Mapping[str, Any]]] = None,
        *,
        transport: Optional[Any] = None,
        scheduler: Optional[Any] = None,
        event_emitter: Optional[ToolkitEventEmitter] = None,
        schedule_provider: Optional[ScheduleProvider] = None,
    ):
        """
        Initialize the poller.

        Args:
            config: PollerConfig or mapping of options. May be supplied later via configure().
            transport: Object with fetch(url, timeout) -> bytes and reset(). Defaults to
                a RequestsTransport.
            scheduler: Object with call_later(delay, fn) and call_every(interval, fn),
                both returning handles with cancel(). Defaults to a ThreadingScheduler.
            event_emitter: Receives started/stopped/read/error events.
            schedule_provider: Static schedule used to interpolate predicted times.

        Raises:
            ConfigError: If the configuration is invalid.
        """
        self.config: Optional[PollerConfig] = None
        self.events = event_emitter or ToolkitEventEmitter()
        self.schedule_provider = schedule_provider

        self._transport = transport or RequestsTransport()
        self._scheduler = scheduler or ThreadingScheduler()
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

        self._poll_timer = None
        self._retry_timer = None
        self._watchdog_timer = None
        self._first_read_timer = None
        self._generation = 0
        self._retry_counter = 0
        self._fetch_in_flight = False
        self._processing = False
        self._previous_timestamp: Optional[int] = None
        self._last_successful_read: Optional[float] = None
        self._restarts = 0

        if config is not None:
            self.configure(config)

    # Public interface

    def configure(self, options: Union[PollerConfig, Mapping[str, Any]]) -> None:
        """
        Set or update the configuration.

        A mapping is merged into the current configuration, so a running poller
        can be given e.g. a new poll interval alone. If the poller is running it
        restarts with the new settings.

        Args:
            options: PollerConfig or mapping (see PollerConfig.from_mapping).

        Raises:
            ConfigError: If the resulting configuration is invalid.
        """
        if isinstance(options, PollerConfig):
            config = replace(options).validate()
        else:
            with self._lock:
                base = self.config
            config = PollerConfig.from_mapping(options, base=base)

        with self._lock:
            self.config = config
            if not self._is_running():
                logger.info(f"Feed poller configured for {config.source_url}")
                return
            logger.info(f"Feed poller reconfigured for {config.source_url}, restarting")
            self._cancel_timers()
            self._start()

    def register_listener(self, listener: Listener) -> None:
        """
        Register a listener. The first listener starts polling.

        Args:
            listener: Called with a QueryView for every accepted feed snapshot.

        Raises:
            InvalidListener: If the listener is not callable.
            ConfigError: If the poller has not been configured.
        """
        if not callable(listener):
            raise InvalidListener(f"Listeners must be callable, got {listener!r}")

        with self._lock:
            if self.config is None:
                raise ConfigError("The feed poller must be configured before listeners are registered")
            if listener not in self._listeners:
                self._listeners.append(listener)
            if not self._is_running():
                self._start()

    def remove_listener(self, listener: Listener) -> None:
        """Remove a listener. Removing the last one stops polling."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if not self._listeners and self._is_running():
                self._stop()

    def start(self) -> None:
        """Resume polling after stop(). Does nothing without listeners."""
        with self._lock:
            if not self._is_running() and self._listeners:
                self._start()

    def stop(self) -> None:
        """Stop polling and cancel every timer. Listeners stay registered."""
        with self._lock:
            if self._is_running():
                self._stop()

    def get_state(self) -> PollerStateSnapshot:
        """Snapshot of configuration and control state, for diagnostics."""
        with self._lock:
            if not self._is_running():
                state = PollerState.STOPPED
            elif self._retry_timer is not None:
                state = PollerState.RETRYING
            else:
                state = PollerState.POLLING

            config = self.config
            return PollerStateSnapshot(
                state=state,
                source_url=config.source_url if config else None,
                poll_interval_seconds=config.poll_interval_seconds if config else None,
                retry_interval_seconds=config.retry_interval_seconds if config else None,
                max_retries=config.max_retries if config else None,
                retry_counter=self._retry_counter,
                listener_count=len(self._listeners),
                previous_timestamp=self._previous_timestamp,
                last_successful_read=self._last_successful_read,
                fetch_in_flight=self._fetch_in_flight,
                restarts=self._restarts,
            )

    # Timer control. Callers hold self._lock.

    def _is_running(self) -> bool:
        return self._poll_timer is not None

    def _start(self) -> None:
        self._generation += 1
        generation = self._generation
        self._retry_counter = 0
        self._fetch_in_flight = False
        self._processing = False

        # First read runs on the scheduler, never on the caller's thread
        self._first_read_timer = self._scheduler.call_later(0, partial(self._read_feed, generation))
        self._poll_timer = self._scheduler.call_every(
            self.config.poll_interval_seconds, partial(self._on_poll_tick, generation)
        )
        self._arm_watchdog(generation)
        self._emit(EventType.FEED_READER_STARTED, listeners=len(self._listeners))

    def _stop(self) -> None:
        self._cancel_timers()
        self._emit(EventType.FEED_READER_STOPPED)

    def _cancel_timers(self) -> None:
        for timer in (self._first_read_timer, self._poll_timer, self._retry_timer, self._watchdog_timer):
            if timer is not None:
                timer.cancel()
        self._first_read_timer = None
        self._poll_timer = None
        self._retry_timer = None
        self._watchdog_timer = None
        self._generation += 1
        self._retry_counter = 0
        self._fetch_in_flight = False
        self._processing = False

    def _cancel_retry(self) -> None:
        if self._retry_timer is not None:
            self._retry_timer.cancel()
            self._retry_timer = None
        self._retry_counter = 0

    def _arm_watchdog(self, generation: int) -> None:
        if self._watchdog_timer is not None:
            self._watchdog_timer.cancel()
        self._watchdog_timer = self._scheduler.call_later(
            WATCHDOG_INTERVALS * self.config.poll_interval_seconds,
            partial(self._on_watchdog, generation),
        )

    # Timer callbacks

    def _on_poll_tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if self._retry_timer is not None:
                logger.debug("Regular poll supersedes pending retries")
            self._cancel_retry()

        self._read_feed(generation)

    def _on_retry_tick(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._retry_timer is None:
                return

            self._retry_counter += 1
            if self._retry_counter > self.config.max_retries:
                logger.warning(
                    f"Gave up after {self.config.max_retries} retries, waiting for the next regular poll"
                )
                self._retry_timer.cancel()
                self._retry_timer = None
                return

            logger.warning(f"FeedPoller retry number {self._retry_counter}")

        self._read_feed(generation)

    def _on_watchdog(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return

            self._watchdog_timer = None
            if self._processing:
                logger.debug("Listeners still running, watchdog re-armed")
                self._arm_watchdog(generation)
                return

            timeout = WATCHDOG_INTERVALS * self.config.poll_interval_seconds
            error = TransportError(f"No feed response within {timeout} seconds, resetting the connection")
            self._emit(
                EventType.ERROR,
                error=error,
                kind=type(error).__name__,
                state=PollerState.WATCHDOG_TRIGGERED.value,
                retry_count=self._retry_counter,
            )

            self._cancel_timers()
            self._transport.reset()
            self._restarts += 1
            self._start()

    # Fetch, decode, dispatch

    def _read_feed(self, generation: int) -> None:
        """Fetch and decode one snapshot. Must be called without holding self._lock."""
        with self._lock:
            if generation != self._generation:
                return
            if self._fetch_in_flight:
                logger.debug("A fetch is already in flight, skipping this one")
                return
            self._fetch_in_flight = True
            config = self.config
            transport = self._transport

        try:
            data = transport.fetch(config.source_url, timeout=config.request_timeout_seconds)
        except Exception as e:
            self._on_fetch_failed(generation, _as_toolkit_error(e, TransportError))
            return

        try:
            message = config.decoder(data)
        except DecodeError as e:
            if e.payload is None:
                e.payload = data
            self._on_fetch_failed(generation, e)
            return
        except Exception as e:
            error = DecodeError(f"Decoder failed: {e!r}", payload=data)
            error.__cause__ = e
            self._on_fetch_failed(generation, error)
            return

        self._on_fetch_succeeded(generation, message)

    def _on_fetch_failed(self, generation: int, error: ToolkitError) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug(f"Ignoring failure of a superseded fetch: {error}")
                return
            self._fetch_in_flight = False
            self._arm_watchdog(generation)
            self._handle_retryable_error(generation, error)

    def _on_fetch_succeeded(self, generation: int, message: FeedMessage) -> None:
        """
        Accept a decoded snapshot, then index and dispatch it.

        Acceptance is decided under the lock. Indexing and listeners run
        without it, so listeners may call back into the poller from any
        thread. The fetch counts as in flight until dispatch ends, which
        keeps deliveries in timestamp order.
        """
        with self._lock:
            if generation != self._generation:
                logger.debug("Ignoring response of a superseded fetch")
                return
            self._arm_watchdog(generation)

            timestamp = message.header.timestamp or 0
            previous_timestamp = self._previous_timestamp
            if previous_timestamp is not None and timestamp <= previous_timestamp:
                self._fetch_in_flight = False
                self._handle_retryable_error(generation, OrderingViolation(previous_timestamp, timestamp))
                return

            self._previous_timestamp = timestamp
            self._cancel_retry()
            self._processing = True
            schedule_provider = self.schedule_provider

        try:
            view = QueryView.from_message(message, schedule_provider)
        except Exception as e:
            logger.error(f"Failed to index feed message: {e}", exc_info=True)
            error = DecodeError(f"Failed to index feed message: {e!r}")
            error.__cause__ = e
            with self._lock:
                if generation == self._generation:
                    # Never delivered: roll back the acceptance
                    self._previous_timestamp = previous_timestamp
                    self._finish_processing()
                    self._handle_retryable_error(generation, error)
            return

        with self._lock:
            if generation != self._generation:
                logger.debug("Poller stopped while indexing, dropping the snapshot")
                return
            self._last_successful_read = time.time()
            listeners = list(self._listeners)

        self._emit(
            EventType.FEED_READER_SUCCESSFUL_READ,
            timestamp=timestamp,
            entities=len(message.entity),
        )
        try:
            self._dispatch(view, listeners)
        finally:
            with self._lock:
                if generation == self._generation:
                    self._finish_processing()

    def _finish_processing(self) -> None:
        self._fetch_in_flight = False
        self._processing = False

    def _handle_retryable_error(self, generation: int, error: ToolkitError) -> None:
        payload = {
            "error": error,
            "kind": type(error).__name__,
            "retry_count": self._retry_counter,
        }
        if isinstance(error, DecodeError) and error.excerpt:
            payload["excerpt"] = error.excerpt

        event_type = EventType.DATA_ANOMALY if isinstance(error, OrderingViolation) else EventType.ERROR
        self._emit(event_type, **payload)

        # One retry sequence at a time
        if self._retry_timer is None:
            self._retry_counter = 0
            self._retry_timer = self._scheduler.call_every(
                self.config.retry_interval_seconds, partial(self._on_retry_tick, generation)
            )

    def _dispatch(self, view: QueryView, listeners: List[Listener]) -> List[ListenerError]:
        """Call each listener with the view. Listener failures are reported, not raised."""
        failures = []
        for listener in listeners:
            try:
                listener(view)
            except Exception as e:
                error = ListenerError(listener, e)
                logger.error(str(error), exc_info=True)
                self._emit(EventType.ERROR, error=error, kind=type(error).__name__)
                failures.append(error)
        return failures

    def _emit(self, event_type: EventType, **payload: Any) -> None:
        source_url = self.config.source_url if self.config else None
        self.events.emit(ToolkitEvent(type=event_type, source_url=source_url, payload=payload))

    def __repr__(self) -> str:
        state = self.get_state()
        return f"FeedPoller({state.source_url!r}, state={state.state.value}, listeners={state.listener_count})"


def _as_toolkit_error(error: Exception, kind: type) -> ToolkitError:
    if isinstance(error, ToolkitError):
        return error
    wrapped = kind(f"Unexpected failure: {error!r}")
    wrapped.__cause__ = error
    return wrapped
