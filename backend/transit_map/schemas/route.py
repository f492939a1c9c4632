from enum import Enum

from pydantic import BaseModel, ConfigDict


class RouteKind(str, Enum):
    TRAM = "Tram"
    BUS = "Bus"

    @classmethod
    def from_route_type(cls, route_type: int | None) -> "RouteKind":
        """GTFS route_type 0 is a tram; every other (or unknown) mode is treated as a bus."""
        return cls.TRAM if route_type == 0 else cls.BUS


class ResolvedPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    route_id: str
    short_name: str
    color: str
    route_kind: RouteKind
    coordinates: tuple[tuple[float, float], ...]  # ((lon, lat), ...)
    source: str = ""  # geometry provider that produced the coordinates


class LineInfo(BaseModel):
    id: str
    name: str
    kind: RouteKind
    color: str
    text_color: str


class StopInfo(BaseModel):
    id: str
    name: str
    lat: float
    lng: float


class Diagnostics(BaseModel):
    routes: int
    trips: int
    stops: int
    stop_times: int
    shapes: int
    osm_refs: int
    paths: int
    paths_by_source: dict[str, int]
    skipped_routes: list[str]
    refreshed_at: str | None = None
