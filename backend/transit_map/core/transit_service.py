"""Main orchestrator: refreshes schedule and geometry snapshots, polls vehicles, publishes updates."""

import asyncio
import datetime
import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

import httpx
from shapely.geometry import Point, box

from transit_map.core.broadcaster import Broadcaster
from transit_map.core.gtfs_realtime import fetch_vehicle_positions
from transit_map.core.gtfs_static import GtfsStop, ScheduleData, load_schedule
from transit_map.core.http_retry import RetryOptions
from transit_map.core.osm_geometry import build_overpass_query, fetch_overpass_routes
from transit_map.core.route_path_builder import ALL_ROUTE_KINDS, build_route_paths
from transit_map.core.vehicle_enricher import enrich_vehicles
from transit_map.core.vehicle_reconciler import reconcile
from transit_map.schemas.route import Diagnostics, LineInfo, ResolvedPath, RouteKind
from transit_map.schemas.vehicle import Vehicle, VehicleSnapshot, VehicleUpdate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitSnapshot:
    """Everything derived from one schedule refresh; replaced as a whole, never mutated."""

    schedule: ScheduleData
    route_paths: tuple[ResolvedPath, ...] = ()
    osm_refs: int = 0
    refreshed_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )


@dataclass(frozen=True)
class BBox:
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float


class TransitService:
    """Owns the current snapshots and the two periodic jobs that replace them."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        broadcaster: Broadcaster | None = None,
        *,
        static_urls: Sequence[str] = (),
        realtime_urls: Sequence[str] = (),
        overpass_url: str | None = None,
        overpass_query: str | None = None,
        osm_route_kinds: frozenset[RouteKind] = ALL_ROUTE_KINDS,
        retry: RetryOptions | None = None,
    ) -> None:
        self.client = client
        self.broadcaster = broadcaster
        self.static_urls = list(static_urls)
        self.realtime_urls = list(realtime_urls)
        self.overpass_url = overpass_url
        self.overpass_query = overpass_query
        self.osm_route_kinds = osm_route_kinds
        self.retry = retry

        self.snapshot: TransitSnapshot | None = None
        self.vehicles: Mapping[str, Vehicle] = MappingProxyType({})

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, broadcaster: Broadcaster | None = None) -> "TransitService":
        from transit_map.config import settings

        return cls(
            client,
            broadcaster,
            static_urls=settings.static_feed_urls,
            realtime_urls=settings.realtime_feed_urls,
            overpass_url=settings.overpass_url,
            overpass_query=build_overpass_query(settings.overpass_bbox, settings.overpass_bus_network),
            osm_route_kinds=frozenset(RouteKind(k) for k in settings.osm_route_kinds),
            retry=RetryOptions.from_settings(),
        )

    # --- Schedule refresh ---

    async def _fetch_osm_paths(self) -> dict:
        if not self.overpass_url or not self.overpass_query:
            return {}
        return await fetch_overpass_routes(self.client, self.overpass_url, self.overpass_query, self.retry)

    async def refresh_schedule(self) -> None:
        """Rebuild schedule and route paths; keep the previous snapshot if the schedule fails."""
        schedule, osm_paths = await asyncio.gather(
            load_schedule(self.client, self.static_urls, self.retry),
            self._fetch_osm_paths(),
            return_exceptions=True,
        )
        if isinstance(schedule, BaseException):
            logger.error("Schedule refresh failed - keeping previous snapshot", exc_info=schedule)
            return
        if isinstance(osm_paths, BaseException):
            logger.error("OSM geometry fetch failed", exc_info=osm_paths)
            osm_paths = {}
        try:
            self.apply_schedule(schedule, osm_paths)
        except Exception:
            logger.exception("Route path build failed - keeping previous snapshot")

    def apply_schedule(self, schedule: ScheduleData, osm_paths: Mapping | None = None) -> TransitSnapshot:
        """Build paths for a loaded schedule and publish them as the current snapshot."""
        osm_paths = osm_paths or {}
        if not osm_paths:
            logger.warning("No OSM geometry available - using GTFS shapes and stop sequences only")
        paths = build_route_paths(schedule, osm_paths, self.osm_route_kinds)
        self.snapshot = TransitSnapshot(schedule=schedule, route_paths=paths, osm_refs=len(osm_paths))
        logger.info(
            "Schedule snapshot ready: %d routes, %d trips, %d stops, %d paths",
            len(schedule.routes), len(schedule.trips), len(schedule.stops), len(paths),
        )
        return self.snapshot

    # --- Vehicle polling ---

    async def poll_vehicles(self) -> None:
        """Single poll cycle: fetch positions, enrich, reconcile, publish."""
        snapshot = self.snapshot
        if snapshot is None:
            logger.debug("Skipping vehicle poll - no schedule loaded yet")
            return
        try:
            raw = await fetch_vehicle_positions(self.client, self.realtime_urls, self.retry)
            vehicles = enrich_vehicles(raw, snapshot.schedule)
            diff = reconcile(self.vehicles, vehicles)
            self.vehicles = diff.active
            logger.info(
                "Polled %d vehicles (%d enriched): +%d ~%d -%d",
                len(raw), len(vehicles), len(diff.added), len(diff.updated), len(diff.removed),
            )

            if self.broadcaster is not None:
                await self.broadcaster.publish(
                    VehicleUpdate(vehicles=[*diff.added, *diff.updated], removed=list(diff.removed)),
                    VehicleSnapshot(vehicles=list(diff.active.values())),
                )
        except Exception:
            logger.exception("Error in vehicle poll cycle")

    # --- Read accessors ---

    def get_lines(self) -> list[LineInfo]:
        """All schedule routes, trams first, then by name."""
        if self.snapshot is None:
            return []
        lines = [
            LineInfo(id=r.route_id, name=r.short_name, kind=r.kind, color=r.color, text_color=r.text_color)
            for r in self.snapshot.schedule.routes.values()
        ]
        lines.sort(key=lambda line: (line.kind != RouteKind.TRAM, line.name.casefold()))
        return lines

    def get_route_paths(self) -> tuple[ResolvedPath, ...]:
        return self.snapshot.route_paths if self.snapshot else ()

    def get_stops(self, bbox: BBox | None = None) -> list[GtfsStop]:
        if self.snapshot is None:
            return []
        stops = list(self.snapshot.schedule.stops.values())
        if bbox is None:
            return stops
        area = box(bbox.min_lng, bbox.min_lat, bbox.max_lng, bbox.max_lat)
        return [s for s in stops if area.covers(Point(s.lng, s.lat))]

    def get_vehicles(self, line: str | None = None) -> list[Vehicle]:
        vehicles = list(self.vehicles.values())
        if line:
            vehicles = [v for v in vehicles if v.line.name == line]
        return vehicles

    def get_diagnostics(self) -> Diagnostics | None:
        snapshot = self.snapshot
        if snapshot is None:
            return None
        schedule = snapshot.schedule
        with_path = {p.route_id for p in snapshot.route_paths}
        return Diagnostics(
            routes=len(schedule.routes),
            trips=len(schedule.trips),
            stops=len(schedule.stops),
            stop_times=len(schedule.stop_times),
            shapes=len(schedule.shapes),
            osm_refs=snapshot.osm_refs,
            paths=len(snapshot.route_paths),
            paths_by_source=dict(Counter(p.source for p in snapshot.route_paths)),
            skipped_routes=sorted(rid for rid in schedule.routes if rid not in with_path),
            refreshed_at=snapshot.refreshed_at.isoformat(),
        )
