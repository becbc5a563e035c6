"""Data models for decoded GTFS-Realtime messages and their indices."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol


class EntityKind(str, Enum):
    """The populated variant of a FeedEntity."""
    TRIP_UPDATE = "TripUpdate"
    VEHICLE_POSITION = "VehiclePosition"
    ALERT = "Alert"


@dataclass
class FeedHeader:
    """Metadata about a feed snapshot."""
    timestamp: Optional[int] = None  # Unix timestamp of the snapshot
    gtfs_realtime_version: str = ""
    incrementality: Optional[str] = None


@dataclass
class TripDescriptor:
    """Identifies one scheduled trip instance."""
    trip_id: str = ""
    route_id: str = ""
    start_date: str = ""  # YYYYMMDD
    start_time: str = ""  # HH:MM:SS
    direction_id: Optional[int] = None
    schedule_relationship: Optional[str] = None


@dataclass
class StopTimeEvent:
    """Predicted timing for an arrival or a departure."""
    time: Optional[int] = None  # Unix timestamp
    delay: Optional[int] = None  # Seconds relative to schedule
    uncertainty: Optional[int] = None


@dataclass
class StopTimeUpdate:
    """Real-time prediction for one stop of a trip."""
    stop_id: str = ""
    stop_sequence: Optional[int] = None
    arrival: Optional[StopTimeEvent] = None
    departure: Optional[StopTimeEvent] = None
    schedule_relationship: Optional[str] = None
    # Derived while indexing: the stated time, or one interpolated from the schedule
    predicted_arrival: Optional[int] = field(default=None, compare=False)
    predicted_departure: Optional[int] = field(default=None, compare=False)

    def stated_time(self, event_type: str) -> Optional[int]:
        """Time given directly by the feed for "arrival" or "departure"."""
        event = getattr(self, event_type)
        return event.time if event is not None else None

    def stated_delay(self, event_type: str) -> Optional[int]:
        event = getattr(self, event_type)
        return event.delay if event is not None else None


@dataclass
class TripUpdate:
    """Real-time revision of a trip's stop-by-stop timing."""
    trip: Optional[TripDescriptor] = None
    stop_time_update: List[StopTimeUpdate] = field(default_factory=list)
    timestamp: Optional[int] = None
    delay: Optional[int] = None
    vehicle_id: Optional[str] = None


@dataclass
class VehiclePosition:
    """Last known whereabouts of a vehicle."""
    trip: Optional[TripDescriptor] = None
    timestamp: Optional[int] = None
    stop_id: Optional[str] = None
    current_stop_sequence: Optional[int] = None
    current_status: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    bearing: Optional[float] = None
    speed: Optional[float] = None
    vehicle_id: Optional[str] = None


@dataclass
class EntitySelector:
    """An entity (agency, route, stop or trip) affected by an alert."""
    agency_id: Optional[str] = None
    route_id: Optional[str] = None
    stop_id: Optional[str] = None
    trip: Optional[TripDescriptor] = None


@dataclass
class Alert:
    """A service advisory."""
    informed_entity: List[EntitySelector] = field(default_factory=list)
    cause: Optional[str] = None
    effect: Optional[str] = None
    header_text: str = ""
    description_text: str = ""
    url: str = ""


@dataclass
class FeedEntity:
    """One entity of a feed message. At most one variant is populated."""
    id: str = ""
    is_deleted: bool = False
    trip_update: Optional[TripUpdate] = None
    vehicle: Optional[VehiclePosition] = None
    alert: Optional[Alert] = None

    @property
    def kind(self) -> Optional[EntityKind]:
        if self.trip_update is not None:
            return EntityKind.TRIP_UPDATE
        if self.vehicle is not None:
            return EntityKind.VEHICLE_POSITION
        if self.alert is not None:
            return EntityKind.ALERT
        return None


@dataclass
class FeedMessage:
    """A decoded feed snapshot."""
    header: FeedHeader = field(default_factory=FeedHeader)
    entity: List[FeedEntity] = field(default_factory=list)


@dataclass
class TripIndexNode:
    """Everything the feed says about one trip."""
    trip_id: str
    route_id: Optional[str] = None
    trip_update: Optional[TripUpdate] = None
    vehicle_position: Optional[VehiclePosition] = None
    alerts: List[Alert] = field(default_factory=list)
    # Onward stop-time updates, pruned of passed stops, with predicted times filled in
    stop_time_updates: List[StopTimeUpdate] = field(default_factory=list)
    stops: Dict[str, int] = field(default_factory=dict)  # stop_id -> position in stop_time_updates


@dataclass
class FeedIndices:
    """The indices built from one feed message."""
    trips: Dict[str, TripIndexNode] = field(default_factory=dict)
    routes: Dict[str, List[str]] = field(default_factory=dict)  # route_id -> [trip_ids]
    stops: Dict[str, List[str]] = field(default_factory=dict)  # stop_id -> [trip_ids] by predicted time
    route_alerts: Dict[str, List[Alert]] = field(default_factory=dict)
    unrecognized_entities: int = 0


class ScheduleProvider(Protocol):
    """Static schedule lookups used to interpolate missing predicted times."""

    def scheduled_arrival(
        self, trip_id: str, stop_id: str, stop_sequence: Optional[int] = None
    ) -> Optional[str]:
        ...

    def scheduled_departure(
        self, trip_id: str, stop_id: str, stop_sequence: Optional[int] = None
    ) -> Optional[str]:
        ...
