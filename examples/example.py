"""Example usage of FeedPoller: watch the trips calling at one stop."""

import logging
import sys
import time
from pathlib import Path

# Add src to path so we can import gtfsrt_toolkit
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gtfsrt_toolkit import ConfigError, EventType, FeedPoller, decode_feed_message, time_utils

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def make_printer(stop_id: str):
    """
    Build a listener that prints upcoming trips for a stop.

    Args:
        stop_id: GTFS stop ID (e.g., "127N")
    """
    def print_stop(view):
        print(f"\n{'='*70}")
        print(f"Stop {stop_id} - feed time {time_utils.format_timestamp(view.feed_timestamp(), '%H:%M:%S')}")
        print(f"{'='*70}")

        trip_ids = view.trips_servicing_stop(stop_id)
        if not trip_ids:
            print("  No arrivals found")
        now = time.time()
        for trip_id in trip_ids[:10]:
            arrival = view.expected_arrival(trip_id, stop_id) or view.expected_departure(trip_id, stop_id)
            minutes = f"{max(0, round((arrival - now) / 60)):2d} min" if arrival else "  ? min"
            print(f"  {view.route_of(trip_id) or '?':>4}  {minutes}  -> {view.destination_stop(trip_id)}")

            for alert in view.alerts(trip_id):
                print(f"        ! {alert.header_text}")

    return print_stop


def main():
    if len(sys.argv) < 3:
        print("Usage: example.py FEED_URL STOP_ID [POLL_SECONDS] [TIMEZONE]")
        sys.exit(1)

    feed_url, stop_id = sys.argv[1], sys.argv[2]
    poll_seconds = float(sys.argv[3]) if len(sys.argv) > 3 else 30
    if len(sys.argv) > 4:
        time_utils.set_agency_timezone(sys.argv[4])

    try:
        poller = FeedPoller({
            "source_url": feed_url,
            "poll_interval_seconds": poll_seconds,
            "decoder": decode_feed_message,
        })
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    poller.events.subscribe(
        lambda event: print(f"  [{event.type.value}] {event.payload.get('error')}")
        if event.type in (EventType.ERROR, EventType.DATA_ANOMALY) else None
    )

    listener = make_printer(stop_id)
    poller.register_listener(listener)

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
    finally:
        poller.remove_listener(listener)


if __name__ == "__main__":
    main()
