"""Join raw vehicle positions against the schedule to produce display-ready vehicles."""

import logging
from collections.abc import Iterable

from transit_map.core.gtfs_realtime import RawVehiclePosition
from transit_map.core.gtfs_static import ScheduleData
from transit_map.schemas.vehicle import LineRef, Position, Vehicle

logger = logging.getLogger(__name__)


def enrich_vehicle(raw: RawVehiclePosition, schedule: ScheduleData) -> Vehicle | None:
    trip = schedule.trips.get(raw.trip_id)
    if trip is None:
        return None
    route = schedule.routes.get(trip.route_id)
    if route is None:
        return None
    return Vehicle(
        vehicle_id=raw.vehicle_id,
        position=Position(lat=raw.lat, lng=raw.lng),
        bearing=raw.bearing,
        line=LineRef(id=route.route_id, name=route.short_name, kind=route.kind, color=route.color),
        headsign=trip.headsign,
        timestamp=raw.timestamp,
    )


def enrich_vehicles(raw_positions: Iterable[RawVehiclePosition], schedule: ScheduleData) -> list[Vehicle]:
    """Enrich in input order, dropping positions whose trip or route is unknown."""
    vehicles = []
    dropped = 0
    for raw in raw_positions:
        vehicle = enrich_vehicle(raw, schedule)
        if vehicle is None:
            dropped += 1
            continue
        vehicles.append(vehicle)
    if dropped:
        logger.debug("Dropped %d vehicle positions with unknown trip/route", dropped)
    return vehicles
