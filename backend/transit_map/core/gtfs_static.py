"""GTFS static feed parsing and multi-feed merging.

Each feed is a ZIP archive of CSV tables. routes.txt, trips.txt and stops.txt
are mandatory; stop_times.txt and shapes.txt are optional and degrade to empty
data when absent. Feeds are merged in order, later feeds overriding earlier
ones on identical identifiers.
"""

import asyncio
import csv
import io
import logging
import posixpath
import zipfile
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

import httpx

from transit_map.core.http_retry import FetchRetryError, RetryOptions, fetch_with_retry
from transit_map.schemas.route import RouteKind

logger = logging.getLogger(__name__)

MANDATORY_TABLES = ("routes.txt", "trips.txt", "stops.txt")
DEFAULT_COLOR = "#000000"
DEFAULT_TEXT_COLOR = "#FFFFFF"


class GtfsFeedError(Exception):
    """A feed could not be downloaded, opened, or lacks a mandatory table."""


@dataclass(frozen=True)
class GtfsRoute:
    route_id: str
    short_name: str
    long_name: str
    route_type: int | None
    color: str = DEFAULT_COLOR
    text_color: str = DEFAULT_TEXT_COLOR

    @property
    def kind(self) -> RouteKind:
        return RouteKind.from_route_type(self.route_type)


@dataclass(frozen=True)
class GtfsTrip:
    trip_id: str
    route_id: str
    headsign: str
    direction_id: str
    shape_id: str | None = None


@dataclass(frozen=True)
class GtfsStop:
    stop_id: str
    name: str
    lat: float
    lng: float


@dataclass(frozen=True)
class ShapePoint:
    lat: float
    lng: float
    sequence: int


@dataclass(frozen=True)
class StopTimeEntry:
    trip_id: str
    stop_id: str
    sequence: int


def _frozen(d: dict | None = None) -> Mapping:
    return MappingProxyType(dict(d or {}))


@dataclass(frozen=True)
class ScheduleData:
    """Immutable snapshot of one or more merged feeds."""

    routes: Mapping[str, GtfsRoute] = field(default_factory=_frozen)
    trips: Mapping[str, GtfsTrip] = field(default_factory=_frozen)
    stops: Mapping[str, GtfsStop] = field(default_factory=_frozen)
    stop_times: tuple[StopTimeEntry, ...] = ()
    shapes: Mapping[str, tuple[ShapePoint, ...]] = field(default_factory=_frozen)


# --- CSV tables ---

def _strip_bom(content: str) -> str:
    return content[1:] if content.startswith("\ufeff") else content


def iter_table(content: str) -> Iterator[dict[str, str]]:
    """Yield header-addressed rows with trimmed keys and values, skipping empty lines."""
    reader = csv.DictReader(io.StringIO(_strip_bom(content)))
    if reader.fieldnames:
        reader.fieldnames = [name.strip() for name in reader.fieldnames]
    for row in reader:
        values = {
            key: (value or "").strip()
            for key, value in row.items()
            if key is not None
        }
        if any(values.values()):
            yield values


def _color(raw: str, default: str) -> str:
    return f"#{raw}" if raw else default


def _route_type(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def parse_routes(content: str) -> dict[str, GtfsRoute]:
    routes: dict[str, GtfsRoute] = {}
    for row in iter_table(content):
        route_id = row.get("route_id", "")
        if not route_id:
            logger.debug("Skipping route row without route_id: %s", row)
            continue
        routes[route_id] = GtfsRoute(
            route_id=route_id,
            short_name=row.get("route_short_name", ""),
            long_name=row.get("route_long_name", ""),
            route_type=_route_type(row.get("route_type", "")),
            color=_color(row.get("route_color", ""), DEFAULT_COLOR),
            text_color=_color(row.get("route_text_color", ""), DEFAULT_TEXT_COLOR),
        )
    return routes


def parse_trips(content: str) -> dict[str, GtfsTrip]:
    trips: dict[str, GtfsTrip] = {}
    for row in iter_table(content):
        trip_id = row.get("trip_id", "")
        route_id = row.get("route_id", "")
        if not trip_id or not route_id:
            logger.debug("Skipping incomplete trip row: %s", row)
            continue
        trips[trip_id] = GtfsTrip(
            trip_id=trip_id,
            route_id=route_id,
            headsign=row.get("trip_headsign", ""),
            direction_id=row.get("direction_id", ""),
            shape_id=row.get("shape_id") or None,
        )
    return trips


def parse_stops(content: str) -> dict[str, GtfsStop]:
    stops: dict[str, GtfsStop] = {}
    for row in iter_table(content):
        try:
            stop = GtfsStop(
                stop_id=row["stop_id"],
                name=row.get("stop_name", ""),
                lat=float(row["stop_lat"]),
                lng=float(row["stop_lon"]),
            )
        except (KeyError, ValueError) as e:
            logger.debug("Skipping malformed stop row: %s", e)
            continue
        if stop.stop_id:
            stops[stop.stop_id] = stop
    return stops


def parse_stop_times(content: str) -> list[StopTimeEntry]:
    entries = []
    for row in iter_table(content):
        try:
            entries.append(StopTimeEntry(
                trip_id=row["trip_id"],
                stop_id=row["stop_id"],
                sequence=int(row["stop_sequence"]),
            ))
        except (KeyError, ValueError) as e:
            logger.debug("Skipping malformed stop_times row: %s", e)
    return entries


def parse_shapes(content: str) -> dict[str, tuple[ShapePoint, ...]]:
    """Group shape points by shape_id, each group sorted by sequence."""
    grouped: dict[str, list[ShapePoint]] = {}
    for row in iter_table(content):
        try:
            shape_id = row["shape_id"]
            point = ShapePoint(
                lat=float(row["shape_pt_lat"]),
                lng=float(row["shape_pt_lon"]),
                sequence=int(row["shape_pt_sequence"]),
            )
        except (KeyError, ValueError) as e:
            logger.debug("Skipping malformed shapes row: %s", e)
            continue
        grouped.setdefault(shape_id, []).append(point)
    return {
        shape_id: tuple(sorted(points, key=lambda p: p.sequence))
        for shape_id, points in grouped.items()
    }


# --- Archives ---

def read_archive(data: bytes) -> dict[str, str]:
    """Map table file name -> decoded text for every entry of a feed archive."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            return {
                posixpath.basename(info.filename): zf.read(info).decode("utf-8-sig")
                for info in zf.infolist()
                if not info.is_dir()
            }
    except zipfile.BadZipFile as e:
        raise GtfsFeedError(f"Invalid GTFS archive: {e}") from e


def parse_feed(files: Mapping[str, str]) -> ScheduleData:
    """Build a snapshot from a feed's tables. Raises GtfsFeedError on a missing or empty mandatory table."""
    missing = [name for name in MANDATORY_TABLES if not files.get(name, "").strip()]
    if missing:
        raise GtfsFeedError(f"Missing or empty {', '.join(missing)} in GTFS archive")

    stop_times = parse_stop_times(files["stop_times.txt"]) if "stop_times.txt" in files else []
    shapes = parse_shapes(files["shapes.txt"]) if "shapes.txt" in files else {}

    return ScheduleData(
        routes=_frozen(parse_routes(files["routes.txt"])),
        trips=_frozen(parse_trips(files["trips.txt"])),
        stops=_frozen(parse_stops(files["stops.txt"])),
        stop_times=tuple(stop_times),
        shapes=_frozen(shapes),
    )


def parse_feed_archive(data: bytes) -> ScheduleData:
    return parse_feed(read_archive(data))


def merge_schedules(*feeds: ScheduleData) -> ScheduleData:
    """Merge feeds in order; a later feed's record replaces an earlier one with the same key.

    Stop times follow their trip: when a later feed lists stop times for a
    trip id, every earlier entry for that trip is dropped.
    """
    routes: dict[str, GtfsRoute] = {}
    trips: dict[str, GtfsTrip] = {}
    stops: dict[str, GtfsStop] = {}
    shapes: dict[str, tuple[ShapePoint, ...]] = {}
    stop_times: list[StopTimeEntry] = []
    for feed in feeds:
        routes.update(feed.routes)
        trips.update(feed.trips)
        stops.update(feed.stops)
        shapes.update(feed.shapes)
        # A trip redefined by a later feed takes that feed's stop visits only
        redefined = {entry.trip_id for entry in feed.stop_times}
        if redefined:
            stop_times = [entry for entry in stop_times if entry.trip_id not in redefined]
        stop_times.extend(feed.stop_times)
    return ScheduleData(
        routes=_frozen(routes),
        trips=_frozen(trips),
        stops=_frozen(stops),
        stop_times=tuple(stop_times),
        shapes=_frozen(shapes),
    )


async def download_feed(
    client: httpx.AsyncClient, url: str, options: RetryOptions | None = None,
) -> ScheduleData:
    try:
        resp = await fetch_with_retry(client, "GET", url, options)
    except FetchRetryError as e:
        raise GtfsFeedError(f"Failed to download GTFS archive from {url}: {e}") from e
    feed = parse_feed_archive(resp.content)
    logger.info(
        "Parsed GTFS feed %s: %d routes, %d trips, %d stops",
        url, len(feed.routes), len(feed.trips), len(feed.stops),
    )
    return feed


async def load_schedule(
    client: httpx.AsyncClient, urls: Sequence[str], options: RetryOptions | None = None,
) -> ScheduleData:
    """Download every feed concurrently and merge them in URL order."""
    feeds = await asyncio.gather(*(download_feed(client, url, options) for url in urls))
    schedule = merge_schedules(*feeds)
    logger.info(
        "GTFS schedule loaded: %d routes, %d trips, %d stops, %d stop times, %d shapes",
        len(schedule.routes), len(schedule.trips), len(schedule.stops),
        len(schedule.stop_times), len(schedule.shapes),
    )
    return schedule
