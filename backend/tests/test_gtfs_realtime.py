"""Tests for GTFS-RT vehicle position decoding."""

import asyncio

import httpx
import pytest
from google.transit import gtfs_realtime_pb2

from transit_map.core.gtfs_realtime import decode_vehicle_positions, fetch_vehicle_positions
from transit_map.core.http_retry import RetryOptions


def make_feed(*vehicles: tuple[str, str]) -> bytes:
    """FeedMessage with one VehiclePosition entity per (vehicle_id, trip_id)."""
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.header.gtfs_realtime_version = "2.0"
    feed.header.timestamp = 1_700_000_000
    for i, (vehicle_id, trip_id) in enumerate(vehicles):
        entity = feed.entity.add()
        entity.id = str(i)
        if vehicle_id:
            entity.vehicle.vehicle.id = vehicle_id
        if trip_id:
            entity.vehicle.trip.trip_id = trip_id
        entity.vehicle.position.latitude = 43.61
        entity.vehicle.position.longitude = 3.87
        entity.vehicle.position.bearing = 180.0
        entity.vehicle.timestamp = 1_700_000_000 + i
    return feed.SerializeToString()


def test_decode_vehicle_positions():
    """A VehiclePosition entity decodes to a raw position."""
    (pos,) = decode_vehicle_positions(make_feed(("V1", "TR1")))
    assert pos.vehicle_id == "V1"
    assert pos.trip_id == "TR1"
    assert pos.lat == pytest.approx(43.61, abs=1e-5)
    assert pos.lng == pytest.approx(3.87, abs=1e-5)
    assert pos.bearing == pytest.approx(180.0)
    assert pos.timestamp == 1_700_000_000


def test_entities_without_vehicle_or_trip_skipped():
    """Entities missing a vehicle id or trip id are skipped."""
    positions = decode_vehicle_positions(make_feed(("V1", ""), ("", "TR2"), ("V3", "TR3")))
    assert [p.vehicle_id for p in positions] == ["V3"]


def test_fetch_failing_feed_contributes_nothing():
    """A failing feed is ignored while the others still load."""
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/urban.pb":
            return httpx.Response(200, content=make_feed(("V1", "TR1")))
        return httpx.Response(500)

    async def fetch():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_vehicle_positions(
                client, ["https://rt.test/urban.pb", "https://rt.test/suburban.pb"],
                RetryOptions(retries=0, initial_delay_ms=0),
            )

    positions = asyncio.run(fetch())
    assert [p.vehicle_id for p in positions] == ["V1"]
