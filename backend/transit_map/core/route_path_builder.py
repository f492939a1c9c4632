"""Build one renderable path per schedule route.

For each route a representative trip is chosen, then geometry providers are
tried in priority order (GTFS shape, OSM relation, stop sequence) until one
yields at least two points. Routes with no usable geometry are left out.
"""

import logging
from collections import Counter
from collections.abc import Callable, Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import NamedTuple

from transit_map.core.gtfs_static import GtfsRoute, GtfsTrip, ScheduleData, StopTimeEntry
from transit_map.core.line_ref_matcher import match_ref
from transit_map.core.osm_geometry import Coordinate
from transit_map.schemas.route import ResolvedPath, RouteKind

logger = logging.getLogger(__name__)

MIN_PATH_POINTS = 2
ALL_ROUTE_KINDS = frozenset(RouteKind)


@dataclass(frozen=True)
class TripChoice:
    trip_id: str
    shape_id: str | None
    stop_count: int


@dataclass(frozen=True)
class PathContext:
    """Inputs shared by every provider during one build."""

    schedule: ScheduleData
    stop_times_by_trip: Mapping[str, Sequence[StopTimeEntry]]
    osm_paths: Mapping[str, Sequence[Coordinate]] = field(default_factory=dict)
    osm_route_kinds: frozenset[RouteKind] = ALL_ROUTE_KINDS


class GeometryProvider(NamedTuple):
    name: str
    resolve: Callable[[GtfsRoute, TripChoice, PathContext], Sequence[Coordinate] | None]


def group_stop_times_by_trip(
    stop_times: Iterable[StopTimeEntry],
) -> dict[str, tuple[StopTimeEntry, ...]]:
    grouped: dict[str, list[StopTimeEntry]] = {}
    for entry in stop_times:
        grouped.setdefault(entry.trip_id, []).append(entry)
    return {
        trip_id: tuple(sorted(entries, key=lambda e: e.sequence))
        for trip_id, entries in grouped.items()
    }


def find_best_trip(
    trips: Iterable[GtfsTrip],
    stop_times_by_trip: Mapping[str, Sequence[StopTimeEntry]],
) -> TripChoice | None:
    """Prefer shaped trips, then the most stop times; first seen wins a tie."""
    best: TripChoice | None = None
    for trip in trips:
        count = len(stop_times_by_trip.get(trip.trip_id, ()))
        if trip.shape_id:
            if best is None or best.shape_id is None or count > best.stop_count:
                best = TripChoice(trip.trip_id, trip.shape_id, count)
        elif best is None or (best.shape_id is None and count > best.stop_count):
            best = TripChoice(trip.trip_id, None, count)
    return best


# --- Providers ---

def shape_geometry(route: GtfsRoute, trip: TripChoice, ctx: PathContext) -> list[Coordinate] | None:
    if not trip.shape_id:
        return None
    points = ctx.schedule.shapes.get(trip.shape_id, ())
    return [(p.lng, p.lat) for p in sorted(points, key=lambda p: p.sequence)]


def osm_geometry(route: GtfsRoute, trip: TripChoice, ctx: PathContext) -> Sequence[Coordinate] | None:
    if route.kind not in ctx.osm_route_kinds:
        return None
    return match_ref(route.short_name, ctx.osm_paths)


def stop_sequence_geometry(
    route: GtfsRoute, trip: TripChoice, ctx: PathContext,
) -> list[Coordinate] | None:
    coords = []
    for entry in ctx.stop_times_by_trip.get(trip.trip_id, ()):
        stop = ctx.schedule.stops.get(entry.stop_id)
        if stop is not None:
            coords.append((stop.lng, stop.lat))
    return coords


DEFAULT_PROVIDERS: tuple[GeometryProvider, ...] = (
    GeometryProvider("shape", shape_geometry),
    GeometryProvider("osm", osm_geometry),
    GeometryProvider("stops", stop_sequence_geometry),
)


def resolve_geometry(
    route: GtfsRoute,
    trip: TripChoice,
    ctx: PathContext,
    providers: Sequence[GeometryProvider] = DEFAULT_PROVIDERS,
) -> tuple[str, tuple[Coordinate, ...]] | None:
    """Return (provider name, coordinates) from the first provider with enough points."""
    for provider in providers:
        coords = provider.resolve(route, trip, ctx)
        if coords and len(coords) >= MIN_PATH_POINTS:
            return provider.name, tuple(coords)
    return None


def build_route_paths(
    schedule: ScheduleData,
    osm_paths: Mapping[str, Sequence[Coordinate]] | None = None,
    osm_route_kinds: Collection[RouteKind] = ALL_ROUTE_KINDS,
    providers: Sequence[GeometryProvider] = DEFAULT_PROVIDERS,
) -> tuple[ResolvedPath, ...]:
    """Resolve at most one path per route, in schedule route order."""
    stop_times_by_trip = group_stop_times_by_trip(schedule.stop_times)
    ctx = PathContext(
        schedule=schedule,
        stop_times_by_trip=stop_times_by_trip,
        osm_paths=osm_paths or {},
        osm_route_kinds=frozenset(osm_route_kinds),
    )

    trips_by_route: dict[str, list[GtfsTrip]] = {}
    for trip in schedule.trips.values():
        trips_by_route.setdefault(trip.route_id, []).append(trip)

    paths = []
    sources: Counter[str] = Counter()
    for route in schedule.routes.values():
        best = find_best_trip(trips_by_route.get(route.route_id, ()), stop_times_by_trip)
        if best is None:
            logger.debug("Route %s (%s): no trips", route.route_id, route.short_name)
            continue

        resolved = resolve_geometry(route, best, ctx, providers)
        if resolved is None:
            logger.debug("Route %s (%s): no geometry with >= %d points",
                         route.route_id, route.short_name, MIN_PATH_POINTS)
            continue

        source, coords = resolved
        sources[source] += 1
        logger.debug("Route %s: using %s geometry (%d pts)", route.short_name, source, len(coords))
        paths.append(ResolvedPath(
            route_id=route.route_id,
            short_name=route.short_name,
            color=route.color,
            route_kind=route.kind,
            coordinates=coords,
            source=source,
        ))

    logger.info(
        "Route paths built: %d of %d routes (%s)",
        len(paths), len(schedule.routes),
        ", ".join(f"{name}={count}" for name, count in sorted(sources.items())) or "none",
    )
    return tuple(paths)
