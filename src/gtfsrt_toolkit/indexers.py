"""Builds trip, route and stop indices from a decoded feed message.

A fresh set of indices is built for every message; nothing here is shared
between builds and the decoded message itself is never modified. Stop-time
updates carrying derived predicted times are copies stored on the trip's
index node.
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .models import (
    Alert,
    EntityKind,
    FeedIndices,
    FeedMessage,
    ScheduleProvider,
    StopTimeUpdate,
    TripDescriptor,
    TripIndexNode,
    TripUpdate,
    VehiclePosition,
)
from .time_utils import scheduled_time_to_timestamp

logger = logging.getLogger(__name__)

# Arrival before departure: the stop index keeps the first time seen for a trip
EVENT_TYPES = ("arrival", "departure")


def first_stop_time(trip_update: TripUpdate) -> Optional[int]:
    """Stated time at the first listed stop, arrival preferred over departure."""
    if not trip_update.stop_time_update:
        return None
    first = trip_update.stop_time_update[0]
    arrival = first.stated_time("arrival")
    return arrival if arrival is not None else first.stated_time("departure")


def _supersedes(candidate: TripUpdate, current: TripUpdate) -> bool:
    candidate_time = first_stop_time(candidate)
    current_time = first_stop_time(current)

    if candidate_time is None and current_time is None:
        return len(candidate.stop_time_update) > len(current.stop_time_update)
    if current_time is None:
        return True
    if candidate_time is None:
        return False
    return candidate_time > current_time


def resolve_duplicate_trip_updates(trip_updates: Iterable[TripUpdate]) -> Dict[str, TripUpdate]:
    """
    Pick one trip update per trip_id.

    Some feeds publish the same trip twice in a message. The update whose first
    stop has the later stated time wins; an update with such a time beats one
    without. When neither has one, the update with more stop-time updates
    wins. Remaining ties keep the update seen first.

    Args:
        trip_updates: Trip updates in feed order.

    Returns:
        trip_id -> winning TripUpdate, in order of first appearance.
        Trip updates without a trip descriptor or trip_id are dropped.
    """
    winners: Dict[str, TripUpdate] = {}

    for trip_update in trip_updates:
        trip = trip_update.trip
        if trip is None or not trip.trip_id:
            logger.debug("Ignoring trip update without a trip descriptor")
            continue

        current = winners.get(trip.trip_id)
        if current is None:
            winners[trip.trip_id] = trip_update
        elif _supersedes(trip_update, current):
            logger.debug(f"Duplicate trip update for {trip.trip_id}: keeping the later prediction")
            winners[trip.trip_id] = trip_update
        else:
            logger.debug(f"Duplicate trip update for {trip.trip_id}: discarding the earlier prediction")

    return winners


def pruning_cutoff(
    trip_update: TripUpdate,
    vehicle_position: Optional[VehiclePosition],
    header_timestamp: Optional[int],
) -> Optional[int]:
    """Timestamp before which a stop counts as already passed."""
    if vehicle_position is not None and vehicle_position.timestamp is not None:
        return vehicle_position.timestamp
    if trip_update.timestamp is not None:
        return trip_update.timestamp
    return header_timestamp


def prune_passed_stop_time_updates(
    updates: Sequence[StopTimeUpdate],
    cutoff: Optional[int],
) -> List[StopTimeUpdate]:
    """
    Drop the leading stop-time updates the vehicle has already left.

    A stop is passed when its stated departure time (arrival if no departure
    is given) is strictly before the cutoff. Pruning stops at the first update
    that is not provably passed, including one without any stated time, so
    the first remaining update is the next stop not yet departed.
    """
    if cutoff is None:
        return list(updates)

    start = 0
    for update in updates:
        departure = update.stated_time("departure")
        time_at_stop = departure if departure is not None else update.stated_time("arrival")
        if time_at_stop is None or time_at_stop >= cutoff:
            break
        start += 1

    return list(updates[start:])


class IndexBuilder:
    """Indexes a FeedMessage by trip, by route and by stop."""

    def __init__(self, schedule_provider: Optional[ScheduleProvider] = None):
        """
        Initialize the builder.

        Args:
            schedule_provider: Static schedule used to interpolate predicted times
                for stop-time updates that only state a delay. Without it only
                directly stated times are available.
        """
        self.schedule_provider = schedule_provider

    def build(self, message: FeedMessage) -> FeedIndices:
        """
        Build the indices for one feed message.

        Args:
            message: Decoded feed snapshot.

        Returns:
            FeedIndices with finalized route and stop lists.
        """
        indices = FeedIndices()
        route_trips: Dict[str, Set[str]] = {}
        stop_times: Dict[str, Dict[str, int]] = {}

        trip_updates: List[TripUpdate] = []
        vehicle_positions: List[VehiclePosition] = []
        alerts: List[Alert] = []

        for entity in message.entity:
            kind = entity.kind
            if kind is EntityKind.TRIP_UPDATE:
                trip_updates.append(entity.trip_update)
            elif kind is EntityKind.VEHICLE_POSITION:
                vehicle_positions.append(entity.vehicle)
            elif kind is EntityKind.ALERT:
                alerts.append(entity.alert)
            else:
                indices.unrecognized_entities += 1
                logger.warning(f"Unrecognized feed entity {entity.id!r}, skipping")

        for alert in alerts:
            self._index_alert(indices, route_trips, alert)

        # Vehicle timestamps are the preferred pruning cutoff for trip updates
        for vehicle_position in vehicle_positions:
            self._index_vehicle_position(indices, route_trips, vehicle_position)

        for trip_id, trip_update in resolve_duplicate_trip_updates(trip_updates).items():
            self._index_trip_update(
                indices, route_trips, stop_times, trip_id, trip_update, message.header.timestamp
            )

        indices.routes = {route_id: sorted(trip_ids) for route_id, trip_ids in route_trips.items()}
        indices.stops = {stop_id: _trips_by_time(times) for stop_id, times in stop_times.items()}

        logger.debug(
            f"Indexed {len(indices.trips)} trips, {len(indices.routes)} routes, "
            f"{len(indices.stops)} stops"
        )
        return indices

    @staticmethod
    def _node(indices: FeedIndices, trip: TripDescriptor) -> TripIndexNode:
        node = indices.trips.get(trip.trip_id)
        if node is None:
            node = indices.trips[trip.trip_id] = TripIndexNode(trip_id=trip.trip_id)
        if trip.route_id and not node.route_id:
            node.route_id = trip.route_id
        return node

    @staticmethod
    def _register_route(route_trips: Dict[str, Set[str]], route_id: Optional[str], trip_id: str) -> None:
        if route_id:
            route_trips.setdefault(route_id, set()).add(trip_id)

    def _index_alert(self, indices: FeedIndices, route_trips: Dict[str, Set[str]], alert: Alert) -> None:
        for selector in alert.informed_entity:
            trip = selector.trip
            route_id = (trip.route_id if trip is not None else None) or selector.route_id

            if trip is not None and trip.trip_id:
                node = self._node(indices, trip)
                if not any(existing is alert for existing in node.alerts):
                    node.alerts.append(alert)
                self._register_route(route_trips, route_id, trip.trip_id)
            elif route_id:
                route_alerts = indices.route_alerts.setdefault(route_id, [])
                if not any(existing is alert for existing in route_alerts):
                    route_alerts.append(alert)

    def _index_vehicle_position(
        self,
        indices: FeedIndices,
        route_trips: Dict[str, Set[str]],
        vehicle_position: VehiclePosition,
    ) -> None:
        trip = vehicle_position.trip
        if trip is None or not trip.trip_id:
            logger.debug(f"Ignoring vehicle position without a trip (vehicle {vehicle_position.vehicle_id})")
            return

        node = self._node(indices, trip)
        current = node.vehicle_position
        if current is None or (vehicle_position.timestamp or 0) > (current.timestamp or 0):
            node.vehicle_position = vehicle_position
        self._register_route(route_trips, trip.route_id, trip.trip_id)

    def _index_trip_update(
        self,
        indices: FeedIndices,
        route_trips: Dict[str, Set[str]],
        stop_times: Dict[str, Dict[str, int]],
        trip_id: str,
        trip_update: TripUpdate,
        header_timestamp: Optional[int],
    ) -> None:
        node = self._node(indices, trip_update.trip)
        if trip_update.trip.route_id:
            node.route_id = trip_update.trip.route_id
        node.trip_update = trip_update
        self._register_route(route_trips, trip_update.trip.route_id, trip_id)

        cutoff = pruning_cutoff(trip_update, node.vehicle_position, header_timestamp)
        onward = prune_passed_stop_time_updates(trip_update.stop_time_update, cutoff)
        if len(onward) < len(trip_update.stop_time_update):
            logger.debug(
                f"Pruned {len(trip_update.stop_time_update) - len(onward)} passed stops from trip {trip_id}"
            )

        node.stop_time_updates = self._with_predicted_times(trip_update, onward)

        for position, update in enumerate(node.stop_time_updates):
            if not update.stop_id:
                continue
            node.stops.setdefault(update.stop_id, position)

            predicted = (
                update.predicted_arrival
                if update.predicted_arrival is not None
                else update.predicted_departure
            )
            # Only trips with a predicted time are listed at a stop
            if predicted is not None:
                stop_times.setdefault(update.stop_id, {}).setdefault(trip_id, predicted)

    def _with_predicted_times(
        self,
        trip_update: TripUpdate,
        updates: Sequence[StopTimeUpdate],
    ) -> List[StopTimeUpdate]:
        running_delay = trip_update.delay
        predicted_updates = []

        for update in updates:
            predicted = {}
            for event_type in EVENT_TYPES:
                delay = update.stated_delay(event_type)
                if delay is not None:
                    running_delay = delay

                stated = update.stated_time(event_type)
                if stated is not None:
                    predicted[event_type] = stated
                else:
                    predicted[event_type] = self._interpolate(
                        trip_update.trip, update, event_type, running_delay
                    )

            predicted_updates.append(
                replace(
                    update,
                    predicted_arrival=predicted["arrival"],
                    predicted_departure=predicted["departure"],
                )
            )

        return predicted_updates

    def _interpolate(
        self,
        trip: TripDescriptor,
        update: StopTimeUpdate,
        event_type: str,
        delay: Optional[int],
    ) -> Optional[int]:
        if self.schedule_provider is None or delay is None:
            return None

        if event_type == "arrival":
            scheduled = self.schedule_provider.scheduled_arrival(
                trip.trip_id, update.stop_id, update.stop_sequence
            )
        else:
            scheduled = self.schedule_provider.scheduled_departure(
                trip.trip_id, update.stop_id, update.stop_sequence
            )

        scheduled_timestamp = scheduled_time_to_timestamp(scheduled, trip.start_date or None)
        if scheduled_timestamp is None:
            return None
        return scheduled_timestamp + delay


def _trips_by_time(times: Dict[str, int]) -> List[str]:
    ordered = sorted(times.items(), key=lambda item: (item[1], item[0]))
    return [trip_id for trip_id, _ in ordered]


def build_indices(message: FeedMessage, schedule_provider: Optional[ScheduleProvider] = None) -> FeedIndices:
    """Shorthand for IndexBuilder(schedule_provider).build(message)."""
    return IndexBuilder(schedule_provider).build(message)
