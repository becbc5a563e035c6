"""Static GTFS schedule lookups used to interpolate real-time predictions."""

import io
import logging
import zipfile
from typing import Dict, Optional, Tuple, Union

import pandas as pd
import requests

logger = logging.getLogger(__name__)

STOP_TIMES_FILE = "stop_times.txt"
STOP_TIMES_COLUMNS = ["trip_id", "stop_id", "stop_sequence", "arrival_time", "departure_time"]

ScheduledTimes = Tuple[Optional[str], Optional[str]]  # (arrival_time, departure_time)


class GTFSScheduleProvider:
    """Loads stop_times.txt and answers scheduled arrival/departure lookups."""

    def __init__(self):
        """Initialize an empty provider."""
        self._by_sequence: Dict[Tuple[str, str, int], ScheduledTimes] = {}
        self._first_visit: Dict[Tuple[str, str], ScheduledTimes] = {}

    def __len__(self) -> int:
        return len(self._by_sequence)

    def load_from_url(self, url: str, timeout: float = 60) -> None:
        """Download a GTFS zip and load its stop times."""
        logger.info(f"Downloading GTFS data from {url}")
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to download GTFS data: {e}")
            raise
        self.load_from_zip(io.BytesIO(response.content))

    def load_from_zip(self, source: Union[str, io.BytesIO]) -> None:
        """Load stop times from a GTFS zip given as a path or file-like object."""
        with zipfile.ZipFile(source) as zip_file:
            with zip_file.open(STOP_TIMES_FILE) as stop_times:
                self._load_stop_times(stop_times)

    def load_from_files(self, stop_times_path: str) -> None:
        """Load stop times from a local stop_times.txt."""
        logger.info(f"Loading GTFS stop times from {stop_times_path}")
        with open(stop_times_path, "rb") as f:
            self._load_stop_times(f)

    def _load_stop_times(self, csv_source) -> None:
        """Parse stop_times.txt into lookup tables."""
        frame = pd.read_csv(
            csv_source,
            dtype=str,
            keep_default_na=False,
            usecols=lambda column: column.strip() in STOP_TIMES_COLUMNS,
        )
        frame.columns = [column.strip() for column in frame.columns]
        frame["stop_sequence"] = pd.to_numeric(frame["stop_sequence"], errors="coerce")
        frame = frame.dropna(subset=["stop_sequence"])
        frame = frame.sort_values(["trip_id", "stop_sequence"], kind="stable")

        by_sequence: Dict[Tuple[str, str, int], ScheduledTimes] = {}
        first_visit: Dict[Tuple[str, str], ScheduledTimes] = {}

        for row in frame.itertuples(index=False):
            times = (row.arrival_time.strip() or None, row.departure_time.strip() or None)
            by_sequence[(row.trip_id, row.stop_id, int(row.stop_sequence))] = times
            first_visit.setdefault((row.trip_id, row.stop_id), times)

        self._by_sequence = by_sequence
        self._first_visit = first_visit
        logger.info(f"Loaded {len(by_sequence)} scheduled stop times")

    def _lookup(self, trip_id: str, stop_id: str, stop_sequence: Optional[int]) -> ScheduledTimes:
        if stop_sequence is not None:
            times = self._by_sequence.get((trip_id, stop_id, int(stop_sequence)))
            if times is not None:
                return times
        return self._first_visit.get((trip_id, stop_id), (None, None))

    def scheduled_arrival(
        self, trip_id: str, stop_id: str, stop_sequence: Optional[int] = None
    ) -> Optional[str]:
        """
        Scheduled arrival time of a trip at a stop.

        Args:
            trip_id: GTFS trip_id.
            stop_id: GTFS stop_id.
            stop_sequence: Disambiguates trips visiting a stop more than once.
                Without it the trip's first visit is used.

        Returns:
            "HH:MM:SS" (hours may exceed 23), or None if not scheduled.
        """
        return self._lookup(trip_id, stop_id, stop_sequence)[0]

    def scheduled_departure(
        self, trip_id: str, stop_id: str, stop_sequence: Optional[int] = None
    ) -> Optional[str]:
        """Scheduled departure time; same lookup rules as scheduled_arrival."""
        return self._lookup(trip_id, stop_id, stop_sequence)[1]

    def clear(self) -> None:
        """Clear all loaded data to free memory."""
        self._by_sequence.clear()
        self._first_visit.clear()
        logger.info("Cleared GTFS schedule data from memory")
