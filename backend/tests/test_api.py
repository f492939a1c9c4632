"""Tests for the REST API against an in-memory service."""

import httpx
import pytest
from fastapi.testclient import TestClient

from transit_map.api import diagnostics, lines, stops, vehicles
from transit_map.core.gtfs_static import GtfsRoute, GtfsStop, GtfsTrip, ScheduleData, StopTimeEntry
from transit_map.core.transit_service import TransitService
from transit_map.core.vehicle_reconciler import reconcile
from transit_map.main import app
from transit_map.schemas.route import RouteKind
from transit_map.schemas.vehicle import LineRef, Position, Vehicle


def make_schedule() -> ScheduleData:
    return ScheduleData(
        routes={
            "R6": GtfsRoute("R6", "6", "Bus 6", 3, color="#E5007D"),
            "R1": GtfsRoute("R1", "T1", "Tram 1", 0, color="#005CA9"),
        },
        trips={"TR1": GtfsTrip("TR1", "R1", "Odysseum", "0"), "TR6": GtfsTrip("TR6", "R6", "Loup", "0")},
        stops={
            "A": GtfsStop("A", "Mosson", 43.60, 3.80),
            "B": GtfsStop("B", "Odysseum", 43.61, 3.81),
        },
        stop_times=(StopTimeEntry("TR1", "A", 1), StopTimeEntry("TR1", "B", 2)),
    )


@pytest.fixture
def client():
    service = TransitService(httpx.AsyncClient())
    service.apply_schedule(make_schedule())
    vehicle = Vehicle(
        vehicle_id="V1", position=Position(lat=43.6, lng=3.8), bearing=45.0,
        line=LineRef(id="R1", name="T1", kind=RouteKind.TRAM, color="#005CA9"),
        headsign="Odysseum", timestamp=1_700_000_000,
    )
    service.vehicles = reconcile({}, [vehicle]).active
    for module in (lines, stops, vehicles, diagnostics):
        module.service = service
    yield TestClient(app)
    for module in (lines, stops, vehicles, diagnostics):
        module.service = None


def test_health(client):
    """Health endpoint answers ok."""
    assert client.get("/api/health").json() == {"status": "ok"}


def test_lines_trams_first(client):
    """Lines list trams before buses."""
    data = client.get("/api/lines").json()
    assert [line["name"] for line in data] == ["T1", "6"]
    assert data[0]["kind"] == "Tram"
    assert data[1]["kind"] == "Bus"


def test_route_paths_lon_lat(client):
    """Route paths serialise coordinates as [lon, lat] pairs."""
    data = client.get("/api/route-paths").json()
    assert len(data) == 1
    assert data[0]["route_id"] == "R1"
    assert data[0]["route_kind"] == "Tram"
    assert data[0]["coordinates"] == [[3.80, 43.60], [3.81, 43.61]]


def test_stops_bbox(client):
    """Stops are filtered to the requested bounding box."""
    assert len(client.get("/api/stops").json()) == 2
    data = client.get("/api/stops", params={"bbox": "3.79,43.59,3.805,43.605"}).json()
    assert [s["id"] for s in data] == ["A"]


def test_stops_invalid_bbox(client):
    """A malformed bbox is rejected with 400."""
    assert client.get("/api/stops", params={"bbox": "1,2,3"}).status_code == 400
    assert client.get("/api/stops", params={"bbox": "a,b,c,d"}).status_code == 400


def test_vehicles_filter_by_line(client):
    """Vehicles can be filtered by line name and fetched by id."""
    assert [v["vehicle_id"] for v in client.get("/api/vehicles").json()] == ["V1"]
    assert client.get("/api/vehicles", params={"line": "6"}).json() == []
    assert client.get("/api/vehicles/V1").json()["headsign"] == "Odysseum"


def test_diagnostics(client):
    """Diagnostics report counts, path sources and skipped routes."""
    data = client.get("/api/diagnostics").json()
    assert data["routes"] == 2
    assert data["paths_by_source"] == {"stops": 1}
    assert data["skipped_routes"] == ["R6"]


def test_not_loaded_returns_503():
    """Before the first schedule load the API answers 503."""
    lines.service = TransitService(httpx.AsyncClient())
    try:
        assert TestClient(app).get("/api/lines").status_code == 503
    finally:
        lines.service = None
