"""Tests for protobuf decoding."""

import unittest
import sys
from pathlib import Path

# Add src to path so we can import gtfsrt_toolkit
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from google.transit import gtfs_realtime_pb2

from gtfsrt_toolkit.decoder import FeedDecoder, decode_feed_message, resolve_schema
from gtfsrt_toolkit.exceptions import ConfigError, DecodeError
from gtfsrt_toolkit.models import EntityKind


def build_feed() -> bytes:
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    feed.header.timestamp = 1700000000

    entity = feed.entity.add()
    entity.id = "tu-1"
    entity.trip_update.trip.trip_id = "T1"
    entity.trip_update.trip.route_id = "R1"
    entity.trip_update.trip.start_date = "20231114"
    entity.trip_update.delay = 45
    update = entity.trip_update.stop_time_update.add()
    update.stop_id = "A"
    update.stop_sequence = 3
    update.arrival.time = 1700000100
    update = entity.trip_update.stop_time_update.add()
    update.stop_id = "B"
    update.departure.delay = 60

    entity = feed.entity.add()
    entity.id = "vp-1"
    entity.vehicle.trip.trip_id = "T1"
    entity.vehicle.timestamp = 1699999990
    entity.vehicle.vehicle.id = "bus-7"
    entity.vehicle.position.latitude = 40.75
    entity.vehicle.position.longitude = -73.99
    entity.vehicle.current_status = gtfs_realtime_pb2.VehiclePosition.STOPPED_AT

    entity = feed.entity.add()
    entity.id = "al-1"
    selector = entity.alert.informed_entity.add()
    selector.route_id = "R1"
    entity.alert.effect = gtfs_realtime_pb2.Alert.DETOUR
    translation = entity.alert.header_text.translation.add()
    translation.text = "Detour on Main St"

    return feed.SerializeToString()


class TestFeedDecoder(unittest.TestCase):
    """Test conversion of protobuf messages into toolkit models."""

    def setUp(self):
        self.message = decode_feed_message(build_feed())

    def test_header(self):
        self.assertEqual(self.message.header.timestamp, 1700000000)
        self.assertEqual(self.message.header.gtfs_realtime_version, "2.0")
        self.assertEqual(len(self.message.entity), 3)

    def test_entity_kinds(self):
        kinds = [entity.kind for entity in self.message.entity]
        self.assertEqual(kinds, [EntityKind.TRIP_UPDATE, EntityKind.VEHICLE_POSITION, EntityKind.ALERT])

    def test_trip_update(self):
        trip_update = self.message.entity[0].trip_update
        self.assertEqual(trip_update.trip.trip_id, "T1")
        self.assertEqual(trip_update.trip.route_id, "R1")
        self.assertEqual(trip_update.trip.start_date, "20231114")
        self.assertEqual(trip_update.delay, 45)
        self.assertIsNone(trip_update.timestamp)

        first, second = trip_update.stop_time_update
        self.assertEqual(first.stop_id, "A")
        self.assertEqual(first.stop_sequence, 3)
        self.assertEqual(first.arrival.time, 1700000100)
        self.assertIsNone(first.arrival.delay)
        self.assertIsNone(first.departure)
        self.assertIsNone(second.arrival)
        self.assertIsNone(second.departure.time)
        self.assertEqual(second.departure.delay, 60)

    def test_vehicle_position(self):
        vehicle = self.message.entity[1].vehicle
        self.assertEqual(vehicle.trip.trip_id, "T1")
        self.assertEqual(vehicle.timestamp, 1699999990)
        self.assertEqual(vehicle.vehicle_id, "bus-7")
        self.assertEqual(vehicle.current_status, "STOPPED_AT")
        self.assertAlmostEqual(vehicle.latitude, 40.75, places=4)
        self.assertIsNone(vehicle.bearing)

    def test_alert(self):
        alert = self.message.entity[2].alert
        self.assertEqual(alert.header_text, "Detour on Main St")
        self.assertEqual(alert.effect, "DETOUR")
        self.assertIsNone(alert.cause)
        self.assertEqual(alert.informed_entity[0].route_id, "R1")
        self.assertIsNone(alert.informed_entity[0].trip)

    def test_garbage_raises_decode_error(self):
        payload = b"\x0f\x0f\x0f"

        with self.assertRaises(DecodeError) as ctx:
            decode_feed_message(payload)

        self.assertEqual(ctx.exception.payload, payload)
        self.assertEqual(ctx.exception.excerpt, repr(payload))

    def test_explicit_message_class(self):
        decoder = FeedDecoder(gtfs_realtime_pb2.FeedMessage)

        self.assertEqual(decoder(build_feed()).header.timestamp, 1700000000)


class TestResolveSchema(unittest.TestCase):
    """Test loading a message class from a dotted path."""

    def test_resolves_standard_schema(self):
        self.assertIs(
            resolve_schema("google.transit.gtfs_realtime_pb2.FeedMessage"),
            gtfs_realtime_pb2.FeedMessage,
        )

    def test_bad_paths(self):
        for path in ("FeedMessage", "no.such.module.FeedMessage", "google.transit.gtfs_realtime_pb2.Nope"):
            with self.assertRaises(ConfigError):
                resolve_schema(path)


class TestDecodeErrorExcerpt(unittest.TestCase):

    def test_long_payload_truncated(self):
        error = DecodeError("bad", payload=b"x" * 100)

        self.assertEqual(error.excerpt, repr(b"x" * 64) + "... (100 bytes)")

    def test_no_payload(self):
        self.assertIsNone(DecodeError("bad").excerpt)


if __name__ == "__main__":
    unittest.main()
