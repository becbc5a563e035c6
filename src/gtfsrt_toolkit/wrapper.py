"""Read-only query API over one feed message and its indices."""

from datetime import date
from typing import List, Optional

from .indexers import IndexBuilder
from .models import (
    Alert,
    FeedIndices,
    FeedMessage,
    ScheduleProvider,
    StopTimeUpdate,
    TripDescriptor,
    TripIndexNode,
    TripUpdate,
    VehiclePosition,
)
from .time_utils import get_date_from_date_string


class QueryView:
    """
    Answers questions about a single GTFS-Realtime snapshot.

    A view is bound to one FeedMessage and the indices built from it, and never
    changes afterwards; a newer snapshot always gets a new view. Feed data is
    partial by nature, so lookups for unknown trips, stops or routes return
    None or an empty list instead of raising.
    """

    def __init__(self, message: FeedMessage, indices: FeedIndices):
        self._message = message
        self._indices = indices

    @classmethod
    def from_message(
        cls,
        message: FeedMessage,
        schedule_provider: Optional[ScheduleProvider] = None,
    ) -> "QueryView":
        """
        Index a message and wrap it.

        Args:
            message: Decoded feed snapshot.
            schedule_provider: Optional static schedule for interpolating predicted times.

        Returns:
            A QueryView over the message.
        """
        return cls(message, IndexBuilder(schedule_provider).build(message))

    @property
    def message(self) -> FeedMessage:
        return self._message

    @property
    def unrecognized_entity_count(self) -> int:
        return self._indices.unrecognized_entities

    def _node(self, trip_id: str) -> Optional[TripIndexNode]:
        return self._indices.trips.get(trip_id)

    # Feed level

    def feed_timestamp(self) -> Optional[int]:
        return self._message.header.timestamp

    def all_monitored_trips(self) -> List[str]:
        return list(self._indices.trips)

    # Trip level

    def trip_update(self, trip_id: str) -> Optional[TripUpdate]:
        node = self._node(trip_id)
        return node.trip_update if node else None

    def vehicle_position(self, trip_id: str) -> Optional[VehiclePosition]:
        node = self._node(trip_id)
        return node.vehicle_position if node else None

    def alerts(self, trip_id: str) -> List[Alert]:
        node = self._node(trip_id)
        return list(node.alerts) if node else []

    def alerts_for_route(self, route_id: str) -> List[Alert]:
        """Alerts addressed to a whole route rather than to particular trips."""
        return list(self._indices.route_alerts.get(route_id, []))

    def trip_descriptor(self, trip_id: str) -> Optional[TripDescriptor]:
        trip_update = self.trip_update(trip_id)
        if trip_update is not None:
            return trip_update.trip
        vehicle_position = self.vehicle_position(trip_id)
        return vehicle_position.trip if vehicle_position is not None else None

    def route_of(self, trip_id: str) -> Optional[str]:
        node = self._node(trip_id)
        return node.route_id if node else None

    def start_date(self, trip_id: str) -> Optional[date]:
        """Service date the trip started on."""
        trip = self.trip_descriptor(trip_id)
        return get_date_from_date_string(trip.start_date) if trip is not None else None

    # Onward stops

    def stop_time_updates(self, trip_id: str) -> List[StopTimeUpdate]:
        """
        Onward stop-time updates of a trip.

        Passed stops are already pruned, and each update carries its
        predicted_arrival / predicted_departure.
        """
        node = self._node(trip_id)
        return list(node.stop_time_updates) if node else []

    def onward_stops(self, trip_id: str) -> List[str]:
        return [update.stop_id for update in self.stop_time_updates(trip_id)]

    def first_n_onward_stops(self, trip_id: str, n: int) -> List[str]:
        return self.onward_stops(trip_id)[:max(n, 0)]

    def nth_onward_stop(self, trip_id: str, n: int) -> Optional[str]:
        """The n-th onward stop, counting the next stop as 0."""
        stops = self.onward_stops(trip_id)
        if 0 <= n < len(stops):
            return stops[n]
        return None

    def next_stop(self, trip_id: str) -> Optional[str]:
        return self.nth_onward_stop(trip_id, 0)

    def destination_stop(self, trip_id: str) -> Optional[str]:
        stops = self.onward_stops(trip_id)
        return stops[-1] if stops else None

    def stop_position(self, trip_id: str, stop_id: str) -> Optional[int]:
        """Position of a stop within the trip's onward stop-time updates."""
        node = self._node(trip_id)
        return node.stops.get(stop_id) if node else None

    def stop_time_update(self, trip_id: str, stop_id: str) -> Optional[StopTimeUpdate]:
        node = self._node(trip_id)
        if node is None:
            return None
        position = node.stops.get(stop_id)
        if position is None:
            return None
        return node.stop_time_updates[position]

    def expected_arrival(self, trip_id: str, stop_id: str) -> Optional[int]:
        """Predicted arrival of a trip at a stop, as a Unix timestamp."""
        update = self.stop_time_update(trip_id, stop_id)
        return update.predicted_arrival if update is not None else None

    def expected_departure(self, trip_id: str, stop_id: str) -> Optional[int]:
        """Predicted departure of a trip from a stop, as a Unix timestamp."""
        update = self.stop_time_update(trip_id, stop_id)
        return update.predicted_departure if update is not None else None

    # Stops and routes

    def trips_servicing_stop(self, stop_id: str) -> List[str]:
        """Trips calling at a stop, soonest predicted time first."""
        return list(self._indices.stops.get(stop_id, []))

    def trips_servicing_route(self, route_id: str) -> List[str]:
        return list(self._indices.routes.get(route_id, []))

    def trips_servicing_stop_for_route(self, stop_id: str, route_id: str) -> List[str]:
        """Trips of a route calling at a stop, soonest predicted time first."""
        route_trips = set(self._indices.routes.get(route_id, []))
        return [trip_id for trip_id in self._indices.stops.get(stop_id, []) if trip_id in route_trips]

    def __repr__(self) -> str:
        return (
            f"QueryView(timestamp={self.feed_timestamp()}, trips={len(self._indices.trips)}, "
            f"routes={len(self._indices.routes)}, stops={len(self._indices.stops)})"
        )
