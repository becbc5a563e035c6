"""Tests for the HTTP transport and the threading scheduler."""

import threading
import unittest
import sys
from pathlib import Path
from unittest.mock import MagicMock

import requests

# Add src to path so we can import gtfsrt_toolkit
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gtfsrt_toolkit.exceptions import TransportError
from gtfsrt_toolkit.timers import ThreadingScheduler
from gtfsrt_toolkit.transport import RequestsTransport


class TestRequestsTransport(unittest.TestCase):
    """Test fetching through a mocked requests session."""

    def setUp(self):
        self.sessions = []

        def session_factory():
            session = MagicMock()
            session.get.return_value.content = b"\x0a\x03"
            self.sessions.append(session)
            return session

        self.transport = RequestsTransport(session_factory)

    def test_fetch_returns_body(self):
        data = self.transport.fetch("http://feed.example/rt", timeout=3)

        self.assertEqual(data, b"\x0a\x03")
        self.sessions[0].get.assert_called_once_with("http://feed.example/rt", timeout=3)

    def test_http_error_raises_transport_error(self):
        self.sessions[0].get.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("503")

        with self.assertRaises(TransportError):
            self.transport.fetch("http://feed.example/rt", timeout=3)

    def test_timeout_raises_transport_error(self):
        self.sessions[0].get.side_effect = requests.exceptions.Timeout("read timed out")

        with self.assertRaises(TransportError) as ctx:
            self.transport.fetch("http://feed.example/rt", timeout=3)
        self.assertIsInstance(ctx.exception.__cause__, requests.exceptions.Timeout)

    def test_reset_replaces_session(self):
        """Resetting closes the old session and uses a new one."""
        self.transport.reset()

        self.assertEqual(len(self.sessions), 2)
        self.sessions[0].close.assert_called_once()

        self.transport.fetch("http://feed.example/rt", timeout=3)
        self.sessions[1].get.assert_called_once()
        self.sessions[0].get.assert_not_called()


class TestThreadingScheduler(unittest.TestCase):
    """Test real timers with short intervals."""

    def test_call_later(self):
        fired = threading.Event()

        ThreadingScheduler().call_later(0.01, fired.set)

        self.assertTrue(fired.wait(2))

    def test_call_every_repeats_until_cancelled(self):
        ticks = []
        enough = threading.Event()

        def tick():
            ticks.append(1)
            if len(ticks) >= 3:
                enough.set()

        timer = ThreadingScheduler().call_every(0.01, tick)
        self.assertTrue(enough.wait(2))
        timer.cancel()
        timer.join(2)

        self.assertFalse(timer.is_alive())

    def test_cancelled_call_later_does_not_fire(self):
        fired = threading.Event()

        timer = ThreadingScheduler().call_later(0.2, fired.set)
        timer.cancel()

        self.assertFalse(fired.wait(0.4))


if __name__ == "__main__":
    unittest.main()
