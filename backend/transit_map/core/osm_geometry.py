"""Route geometries from OpenStreetMap relations via the Overpass API.

A route relation lists its ways in travel order, but each way's own vertex
order follows how it was drawn in OSM, and members may be missing. Ways are
chained end to end, flipping them as needed, and any way that does not touch
the chain's current end is dropped instead of bridged with a straight line.
"""

import json
import logging
from collections.abc import Mapping, Sequence

import httpx

from transit_map.core.http_retry import FetchRetryError, RetryOptions, fetch_with_retry

logger = logging.getLogger(__name__)

Coordinate = tuple[float, float]  # (lon, lat)

# Per-axis tolerance in degrees, ~5 m at mid latitudes
NEAR_THRESHOLD = 0.0001


def build_overpass_query(bbox: str, bus_network: str | None = None) -> str:
    """Tram route relations inside bbox, plus bus relations of one network."""
    parts = [
        "[out:json];(",
        f'relation["type"="route"]["route"="tram"]({bbox});',
    ]
    if bus_network:
        parts.append(f'relation["type"="route"]["route"="bus"]["network"="{bus_network}"]({bbox});')
    parts.append(");out body geom;")
    return "".join(parts)


def points_near(a: Coordinate, b: Coordinate) -> bool:
    return abs(a[0] - b[0]) < NEAR_THRESHOLD and abs(a[1] - b[1]) < NEAR_THRESHOLD


def dedupe_consecutive(points: Sequence[Coordinate]) -> list[Coordinate]:
    """Collapse runs of near-identical consecutive points to their first occurrence."""
    result: list[Coordinate] = []
    for pt in points:
        if result and points_near(result[-1], pt):
            continue
        result.append(pt)
    return result


def way_coordinates(member: Mapping) -> list[Coordinate]:
    """Convert a way member's [{lat, lon}, ...] geometry to (lon, lat) pairs."""
    coords = []
    for pt in member.get("geometry") or []:
        try:
            coords.append((float(pt["lon"]), float(pt["lat"])))
        except (KeyError, TypeError, ValueError):
            continue
    return coords


def chain_ways(ways: Sequence[Sequence[Coordinate]]) -> list[Coordinate]:
    """Join way vertex lists into one continuous polyline."""
    if not ways or not ways[0]:
        return []

    chain = list(ways[0])

    # The first way may be stored against the direction of travel; the
    # second way tells us which of its ends the route continues from.
    if len(ways) >= 2 and ways[1]:
        nxt = ways[1]
        end_connects = points_near(chain[-1], nxt[0]) or points_near(chain[-1], nxt[-1])
        start_connects = points_near(chain[0], nxt[0]) or points_near(chain[0], nxt[-1])
        if not end_connects and start_connects:
            chain.reverse()

    for way in ways[1:]:
        if not way:
            continue
        if points_near(chain[-1], way[0]):
            chain.extend(way[1:])
        elif points_near(chain[-1], way[-1]):
            chain.extend(reversed(way[:-1]))
        else:
            logger.debug("Skipping disconnected way (%d pts)", len(way))

    return dedupe_consecutive(chain)


def parse_overpass_relations(payload: Mapping) -> dict[str, tuple[Coordinate, ...]]:
    """Map each relation ref to one chained polyline.

    When several relations share a ref (typically one per direction), the one
    with the most way members wins; the first one seen wins a tie.
    """
    best: dict[str, tuple[int, list[Coordinate]]] = {}

    for element in payload.get("elements") or []:
        if not isinstance(element, Mapping) or element.get("type") != "relation":
            continue
        ref = (element.get("tags") or {}).get("ref")
        if not ref:
            continue
        way_members = [m for m in element.get("members") or [] if m.get("type") == "way"]
        if not way_members:
            continue

        existing = best.get(ref)
        if existing is not None and len(way_members) <= existing[0]:
            continue
        coords = chain_ways([way_coordinates(m) for m in way_members])
        best[ref] = (len(way_members), coords)

    result = {ref: tuple(coords) for ref, (_, coords) in best.items() if coords}
    logger.debug("Parsed %d OSM route geometries", len(result))
    return result


async def fetch_overpass_routes(
    client: httpx.AsyncClient,
    url: str,
    query: str,
    options: RetryOptions | None = None,
) -> dict[str, tuple[Coordinate, ...]]:
    """Fetch and chain OSM route geometries; returns an empty mapping on any failure."""
    try:
        resp = await fetch_with_retry(client, "POST", url, options, data={"data": query})
        payload = resp.json()
    except (FetchRetryError, httpx.HTTPError, json.JSONDecodeError) as e:
        logger.warning("Failed to fetch Overpass routes: %s", e)
        return {}

    if not isinstance(payload, Mapping):
        logger.warning("Unexpected Overpass payload type: %s", type(payload).__name__)
        return {}

    result = parse_overpass_relations(payload)
    logger.info("Fetched OSM geometries for %d route refs", len(result))
    return result
