"""HTTP transport for fetching feed snapshots."""

import logging
import threading
from typing import Callable

import requests

from .exceptions import TransportError

logger = logging.getLogger(__name__)


class RequestsTransport:
    """Fetches feed bytes over a reusable requests.Session."""

    def __init__(self, session_factory: Callable[[], requests.Session] = requests.Session):
        """
        Initialize the transport.

        Args:
            session_factory: Builds the session (connection pool) used for fetches.
                Called again each time the transport is reset.
        """
        self._session_factory = session_factory
        self._session = session_factory()
        self._lock = threading.Lock()

    def fetch(self, url: str, timeout: float) -> bytes:
        """
        Fetch a feed snapshot.

        Args:
            url: Full feed URL, including any key.
            timeout: Seconds to wait for the connection and for each read.

        Returns:
            Raw response body.

        Raises:
            TransportError: On connection failures, timeouts and non-2xx responses.
        """
        with self._lock:
            session = self._session

        logger.debug(f"Fetching {url}")
        try:
            response = session.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Failed to fetch {url}: {e}") from e
        return response.content

    def reset(self) -> None:
        """Discard the current session and its pooled connections."""
        with self._lock:
            stale, self._session = self._session, self._session_factory()

        try:
            stale.close()
        except Exception as e:
            logger.warning(f"Error while closing discarded session: {e}")
        logger.info("Transport session reset")

    def close(self) -> None:
        with self._lock:
            self._session.close()
