"""GTFS-realtime VehiclePosition feed decoding."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from transit_map.core.http_retry import FetchRetryError, RetryOptions, fetch_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawVehiclePosition:
    vehicle_id: str
    trip_id: str
    lat: float
    lng: float
    bearing: float
    timestamp: int  # epoch seconds


def decode_vehicle_positions(data: bytes) -> list[RawVehiclePosition]:
    """Decode a FeedMessage, keeping entities that name both a vehicle and a trip."""
    feed = gtfs_realtime_pb2.FeedMessage()
    feed.ParseFromString(data)

    positions = []
    for entity in feed.entity:
        if not entity.HasField("vehicle"):
            continue
        vp = entity.vehicle
        vehicle_id = vp.vehicle.id
        trip_id = vp.trip.trip_id
        if not vehicle_id or not trip_id:
            continue
        positions.append(RawVehiclePosition(
            vehicle_id=vehicle_id,
            trip_id=trip_id,
            lat=vp.position.latitude,
            lng=vp.position.longitude,
            bearing=vp.position.bearing,
            timestamp=int(vp.timestamp),
        ))
    return positions


async def fetch_feed(
    client: httpx.AsyncClient, url: str, options: RetryOptions | None = None,
) -> list[RawVehiclePosition]:
    try:
        resp = await fetch_with_retry(client, "GET", url, options)
        return decode_vehicle_positions(resp.content)
    except (FetchRetryError, DecodeError) as e:
        logger.error("Failed to fetch GTFS-RT from %s: %s", url, e)
        return []


async def fetch_vehicle_positions(
    client: httpx.AsyncClient, urls: Sequence[str], options: RetryOptions | None = None,
) -> list[RawVehiclePosition]:
    """Fetch every feed concurrently; a failing feed contributes nothing."""
    results = await asyncio.gather(*(fetch_feed(client, url, options) for url in urls))
    positions = [p for feed in results for p in feed]
    logger.debug("Fetched %d raw vehicle positions from %d feeds", len(positions), len(urls))
    return positions
