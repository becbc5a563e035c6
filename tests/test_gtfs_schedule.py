"""Tests for GTFSScheduleProvider."""

import io
import os
import tempfile
import unittest
import zipfile
import sys
from pathlib import Path
from unittest.mock import Mock, patch

import requests

# Add src to path so we can import gtfsrt_toolkit
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gtfsrt_toolkit.gtfs_schedule import GTFSScheduleProvider

STOP_TIMES = (
    "trip_id,arrival_time,departure_time,stop_id,stop_sequence,pickup_type\n"
    "LOOP,08:00:00,08:01:00,S,1,0\n"
    "LOOP,08:10:00,08:11:00,X,2,0\n"
    "LOOP,08:20:00,08:21:00,S,3,0\n"
    "NIGHT,25:40:00,,Z,1,0\n"
    "BAD,09:00:00,09:00:00,Q,,0\n"
)


def gtfs_zip(stop_times: str = STOP_TIMES) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zip_file:
        zip_file.writestr("stop_times.txt", stop_times)
        zip_file.writestr("agency.txt", "agency_id,agency_name\nA,Agency\n")
    return buffer.getvalue()


class TestGTFSScheduleProvider(unittest.TestCase):
    """Test loading and lookups."""

    def setUp(self):
        self.schedule = GTFSScheduleProvider()
        self.schedule._load_stop_times(io.BytesIO(STOP_TIMES.encode()))

    def test_rows_without_sequence_skipped(self):
        self.assertEqual(len(self.schedule), 4)
        self.assertIsNone(self.schedule.scheduled_arrival("BAD", "Q"))

    def test_first_visit_without_sequence(self):
        """A loop trip's first visit is used when no stop_sequence is given."""
        self.assertEqual(self.schedule.scheduled_arrival("LOOP", "S"), "08:00:00")
        self.assertEqual(self.schedule.scheduled_departure("LOOP", "S"), "08:01:00")

    def test_stop_sequence_disambiguates(self):
        self.assertEqual(self.schedule.scheduled_arrival("LOOP", "S", 3), "08:20:00")
        self.assertEqual(self.schedule.scheduled_departure("LOOP", "S", 3), "08:21:00")

    def test_unknown_sequence_falls_back_to_first_visit(self):
        self.assertEqual(self.schedule.scheduled_arrival("LOOP", "S", 99), "08:00:00")

    def test_blank_time_is_none(self):
        self.assertEqual(self.schedule.scheduled_arrival("NIGHT", "Z"), "25:40:00")
        self.assertIsNone(self.schedule.scheduled_departure("NIGHT", "Z"))

    def test_unknown_trip(self):
        self.assertIsNone(self.schedule.scheduled_arrival("NOPE", "S"))
        self.assertIsNone(self.schedule.scheduled_departure("LOOP", "NOPE"))

    def test_clear(self):
        self.schedule.clear()

        self.assertEqual(len(self.schedule), 0)
        self.assertIsNone(self.schedule.scheduled_arrival("LOOP", "S"))

    def test_load_from_zip(self):
        schedule = GTFSScheduleProvider()

        schedule.load_from_zip(io.BytesIO(gtfs_zip()))

        self.assertEqual(schedule.scheduled_arrival("LOOP", "X"), "08:10:00")

    def test_load_from_files(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, "stop_times.txt")
            with open(path, "w", encoding="utf-8") as f:
                f.write(STOP_TIMES)

            schedule = GTFSScheduleProvider()
            schedule.load_from_files(path)

        self.assertEqual(len(schedule), 4)

    @patch("gtfsrt_toolkit.gtfs_schedule.requests.get")
    def test_load_from_url(self, mock_get):
        """Test downloading a GTFS zip."""
        response = Mock()
        response.content = gtfs_zip()
        mock_get.return_value = response

        schedule = GTFSScheduleProvider()
        schedule.load_from_url("https://example.org/gtfs.zip", timeout=5)

        mock_get.assert_called_once_with("https://example.org/gtfs.zip", timeout=5)
        self.assertEqual(schedule.scheduled_departure("LOOP", "X"), "08:11:00")

    @patch("gtfsrt_toolkit.gtfs_schedule.requests.get")
    def test_load_from_url_failure(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("offline")

        schedule = GTFSScheduleProvider()
        with self.assertRaises(requests.exceptions.ConnectionError):
            schedule.load_from_url("https://example.org/gtfs.zip")
        self.assertEqual(len(schedule), 0)


if __name__ == "__main__":
    unittest.main()
