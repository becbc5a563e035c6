"""GTFS-Realtime protobuf decoding."""

import importlib
import logging
from typing import Any, Optional

from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2

from .exceptions import ConfigError, DecodeError
from .models import (
    Alert,
    EntitySelector,
    FeedEntity,
    FeedHeader,
    FeedMessage,
    StopTimeEvent,
    StopTimeUpdate,
    TripDescriptor,
    TripUpdate,
    VehiclePosition,
)

logger = logging.getLogger(__name__)


def resolve_schema(path: str) -> type:
    """
    Resolve a dotted path to a compiled protobuf FeedMessage class.

    Args:
        path: e.g. "google.transit.gtfs_realtime_pb2.FeedMessage"

    Raises:
        ConfigError: If the module or class cannot be found.
    """
    module_name, _, class_name = path.rpartition(".")
    if not module_name:
        raise ConfigError(f"Decoder schema must be a dotted path, got {path!r}")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, class_name)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load decoder schema {path!r}: {e}") from e


class FeedDecoder:
    """Turns raw feed bytes into a FeedMessage."""

    def __init__(self, message_class: Optional[type] = None):
        """
        Initialize the decoder.

        Args:
            message_class: Compiled protobuf FeedMessage class describing the feed.
                Agency extensions (e.g. NYCT) compile to their own class.
                Defaults to the standard GTFS-Realtime schema.
        """
        self.message_class = message_class or gtfs_realtime_pb2.FeedMessage

    def __call__(self, data: bytes) -> FeedMessage:
        """
        Decode a GTFS-Realtime message.

        Args:
            data: Raw protobuf bytes.

        Returns:
            The decoded FeedMessage.

        Raises:
            DecodeError: If the bytes are not a valid message.
        """
        feed = self.message_class()
        try:
            feed.ParseFromString(data)
        except ProtobufDecodeError as e:
            raise DecodeError(f"Failed to parse GTFS-Realtime message: {e}", payload=data) from e

        try:
            message = _feed_message(feed)
        except (AttributeError, ValueError) as e:
            raise DecodeError(f"Unexpected GTFS-Realtime message layout: {e}", payload=data) from e

        logger.debug(f"Decoded {len(message.entity)} entities ({len(data)} bytes)")
        return message


decode_feed_message = FeedDecoder()


def _optional(message: Any, field_name: str) -> Any:
    return getattr(message, field_name) if message.HasField(field_name) else None


def _enum_name(message: Any, field_name: str) -> Optional[str]:
    if not message.HasField(field_name):
        return None
    value = getattr(message, field_name)
    enum_value = message.DESCRIPTOR.fields_by_name[field_name].enum_type.values_by_number.get(value)
    return enum_value.name if enum_value is not None else str(value)


def _text(message: Any, field_name: str) -> str:
    if not message.HasField(field_name):
        return ""
    translations = getattr(message, field_name).translation
    return translations[0].text if translations else ""


def _feed_message(feed: Any) -> FeedMessage:
    header = FeedHeader(
        timestamp=_optional(feed.header, "timestamp"),
        gtfs_realtime_version=feed.header.gtfs_realtime_version,
        incrementality=_enum_name(feed.header, "incrementality"),
    )
    return FeedMessage(header=header, entity=[_feed_entity(entity) for entity in feed.entity])


def _feed_entity(entity: Any) -> FeedEntity:
    return FeedEntity(
        id=entity.id,
        is_deleted=entity.is_deleted,
        trip_update=_trip_update(entity.trip_update) if entity.HasField("trip_update") else None,
        vehicle=_vehicle_position(entity.vehicle) if entity.HasField("vehicle") else None,
        alert=_alert(entity.alert) if entity.HasField("alert") else None,
    )


def _trip_descriptor(trip: Any) -> TripDescriptor:
    return TripDescriptor(
        trip_id=trip.trip_id,
        route_id=trip.route_id,
        start_date=trip.start_date,
        start_time=trip.start_time,
        direction_id=_optional(trip, "direction_id"),
        schedule_relationship=_enum_name(trip, "schedule_relationship"),
    )


def _stop_time_event(event: Any) -> StopTimeEvent:
    return StopTimeEvent(
        time=_optional(event, "time"),
        delay=_optional(event, "delay"),
        uncertainty=_optional(event, "uncertainty"),
    )


def _stop_time_update(update: Any) -> StopTimeUpdate:
    return StopTimeUpdate(
        stop_id=update.stop_id,
        stop_sequence=_optional(update, "stop_sequence"),
        arrival=_stop_time_event(update.arrival) if update.HasField("arrival") else None,
        departure=_stop_time_event(update.departure) if update.HasField("departure") else None,
        schedule_relationship=_enum_name(update, "schedule_relationship"),
    )


def _trip_update(trip_update: Any) -> TripUpdate:
    return TripUpdate(
        trip=_trip_descriptor(trip_update.trip) if trip_update.HasField("trip") else None,
        stop_time_update=[_stop_time_update(u) for u in trip_update.stop_time_update],
        timestamp=_optional(trip_update, "timestamp"),
        delay=_optional(trip_update, "delay"),
        vehicle_id=trip_update.vehicle.id if trip_update.HasField("vehicle") else None,
    )


def _vehicle_position(vehicle: Any) -> VehiclePosition:
    position = vehicle.position if vehicle.HasField("position") else None
    return VehiclePosition(
        trip=_trip_descriptor(vehicle.trip) if vehicle.HasField("trip") else None,
        timestamp=_optional(vehicle, "timestamp"),
        stop_id=_optional(vehicle, "stop_id"),
        current_stop_sequence=_optional(vehicle, "current_stop_sequence"),
        current_status=_enum_name(vehicle, "current_status"),
        latitude=position.latitude if position is not None else None,
        longitude=position.longitude if position is not None else None,
        bearing=_optional(position, "bearing") if position is not None else None,
        speed=_optional(position, "speed") if position is not None else None,
        vehicle_id=vehicle.vehicle.id if vehicle.HasField("vehicle") else None,
    )


def _entity_selector(selector: Any) -> EntitySelector:
    return EntitySelector(
        agency_id=_optional(selector, "agency_id"),
        route_id=_optional(selector, "route_id"),
        stop_id=_optional(selector, "stop_id"),
        trip=_trip_descriptor(selector.trip) if selector.HasField("trip") else None,
    )


def _alert(alert: Any) -> Alert:
    return Alert(
        informed_entity=[_entity_selector(e) for e in alert.informed_entity],
        cause=_enum_name(alert, "cause"),
        effect=_enum_name(alert, "effect"),
        header_text=_text(alert, "header_text"),
        description_text=_text(alert, "description_text"),
        url=_text(alert, "url"),
    )
