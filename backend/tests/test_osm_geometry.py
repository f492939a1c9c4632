"""Tests for OSM relation parsing and way chaining."""

import asyncio

import httpx

from transit_map.core.http_retry import RetryOptions
from transit_map.core.osm_geometry import (
    build_overpass_query,
    chain_ways,
    dedupe_consecutive,
    fetch_overpass_routes,
    parse_overpass_relations,
    points_near,
)


def make_way(*latlons: tuple[float, float]) -> dict:
    """Overpass way member from (lat, lon) pairs."""
    return {"type": "way", "ref": 1, "role": "", "geometry": [{"lat": lat, "lon": lon} for lat, lon in latlons]}


def make_relation(ref: str | None, ways: list[dict], rel_id: int = 1) -> dict:
    tags = {"type": "route", "route": "tram"}
    if ref is not None:
        tags["ref"] = ref
    members = [{"type": "node", "ref": 99, "role": "stop", "lat": 0.0, "lon": 0.0}, *ways]
    return {"type": "relation", "id": rel_id, "tags": tags, "members": members}


def test_points_near_uses_per_axis_tolerance():
    """Points are near only when both axes are within tolerance."""
    assert points_near((3.0, 43.0), (3.00005, 43.00005))
    assert not points_near((3.0, 43.0), (3.0002, 43.0))
    assert not points_near((3.0, 43.0), (3.0, 43.0002))


def test_single_way_unchanged():
    """A single way is returned as is."""
    way = [(3.0, 43.0), (3.001, 43.001), (3.002, 43.002)]
    assert chain_ways([way]) == way


def test_forward_join_skips_junction():
    """A way continuing forward is appended without its shared first point."""
    a = [(0.0, 0.0), (1.0, 1.0)]
    b = [(1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]
    assert chain_ways([a, b]) == [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]


def test_reversed_second_way():
    """A way drawn backwards is appended reversed."""
    a = [(0.0, 0.0), (1.0, 1.0)]
    b = [(3.0, 3.0), (2.0, 2.0), (1.0, 1.0)]
    assert chain_ways([a, b]) == [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0), (3.0, 3.0)]


def test_reversed_first_way():
    """A first way drawn against travel is flipped using the second way."""
    a = [(1.0, 1.0), (0.0, 0.0)]  # drawn against the direction of travel
    b = [(1.0, 1.0), (2.0, 2.0)]
    assert chain_ways([a, b]) == [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0)]


def test_reversed_interior_way():
    """Reversed ways in the middle of the chain are flipped."""
    a = [(0.0, 0.0), (1.0, 0.0)]
    b = [(2.0, 0.0), (1.0, 0.0)]
    c = [(2.0, 0.0), (3.0, 0.0)]
    assert chain_ways([a, b, c]) == [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0), (3.0, 0.0)]


def test_gap_way_is_skipped_not_bridged():
    """A way that does not touch the chain end is skipped."""
    a = [(0.0, 0.0), (1.0, 0.0)]
    gap = [(5.0, 5.0), (6.0, 6.0)]
    c = [(1.0, 0.0), (2.0, 0.0)]
    assert chain_ways([a, gap, c]) == [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]


def test_junction_within_tolerance():
    """Junction points within tolerance still join."""
    a = [(0.0, 0.0), (1.0, 1.0)]
    b = [(1.00005, 1.00005), (2.0, 2.0)]
    assert chain_ways([a, b]) == [(0.0, 0.0), (1.0, 1.0), (2.0, 2.0)]


def test_empty_inputs():
    """Empty inputs chain to nothing, and empty ways are ignored."""
    assert chain_ways([]) == []
    assert chain_ways([[]]) == []
    a = [(0.0, 0.0), (1.0, 1.0)]
    assert chain_ways([a, []]) == a


def test_dedupe_keeps_non_consecutive_duplicates():
    """Only consecutive near-duplicates collapse; loops are kept."""
    assert dedupe_consecutive([(0.0, 0.0), (1.0, 1.0), (0.0, 0.0)]) == [(0.0, 0.0), (1.0, 1.0), (0.0, 0.0)]
    assert dedupe_consecutive([(0.0, 0.0), (0.00001, 0.0), (0.00002, 0.0), (1.0, 1.0)]) == [(0.0, 0.0), (1.0, 1.0)]


def test_chain_never_has_near_consecutive_points():
    """The chained polyline has no consecutive near-duplicate points."""
    a = [(0.0, 0.0), (0.0, 0.0), (1.0, 1.0)]
    b = [(1.0, 1.0), (1.00001, 1.0), (2.0, 2.0)]
    chained = chain_ways([a, b])
    assert all(not points_near(p, q) for p, q in zip(chained, chained[1:]))


def test_parse_outputs_lon_lat():
    """Relation geometry is emitted as (lon, lat)."""
    payload = {"elements": [make_relation("1", [make_way((43.6, 3.8), (43.7, 3.9))])]}
    result = parse_overpass_relations(payload)
    assert result["1"] == ((3.8, 43.6), (3.9, 43.7))


def test_parse_skips_unusable_elements():
    """Elements without a ref, without ways or not relations are ignored."""
    payload = {"elements": [
        make_relation(None, [make_way((43.6, 3.8), (43.7, 3.9))]),
        make_relation("2", []),
        {"type": "way", "id": 5, "tags": {"ref": "3"}},
        {"type": "node", "id": 6},
    ]}
    assert parse_overpass_relations(payload) == {}


def test_parse_keeps_relation_with_most_ways():
    """Of relations sharing a ref, the one with more ways is kept."""
    short = make_relation("4", [make_way((0.0, 0.0), (1.0, 1.0))], rel_id=1)
    long = make_relation("4", [make_way((0.0, 0.0), (1.0, 1.0)), make_way((1.0, 1.0), (2.0, 2.0))], rel_id=2)
    result = parse_overpass_relations({"elements": [short, long]})
    assert len(result["4"]) == 3


def test_parse_tie_keeps_first_seen():
    """On equal way counts the first relation is kept."""
    first = make_relation("5", [make_way((0.0, 0.0), (1.0, 1.0))], rel_id=1)
    second = make_relation("5", [make_way((5.0, 5.0), (6.0, 6.0))], rel_id=2)
    result = parse_overpass_relations({"elements": [first, second]})
    assert result["5"] == ((0.0, 0.0), (1.0, 1.0))


def test_parse_drops_relation_without_geometry():
    """A relation whose ways have no points yields nothing."""
    payload = {"elements": [make_relation("6", [{"type": "way", "ref": 1, "role": "", "geometry": []}])]}
    assert parse_overpass_relations(payload) == {}


def test_query_includes_tram_and_bus_network():
    """The query selects trams and, if configured, one bus network."""
    query = build_overpass_query("43.5,3.7,43.7,4.05", "TaM")
    assert '["route"="tram"](43.5,3.7,43.7,4.05)' in query
    assert '["network"="TaM"]' in query
    assert query.endswith("out body geom;")
    assert '"bus"' not in build_overpass_query("1,2,3,4")


def run_fetch(handler) -> dict:
    async def fetch():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_overpass_routes(
                client, "https://overpass.test/api/interpreter", "[out:json];",
                RetryOptions(retries=1, initial_delay_ms=0),
            )
    return asyncio.run(fetch())


def test_fetch_posts_query_and_parses():
    """The query is POSTed as form data and the response parsed."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"elements": [make_relation("1", [make_way((43.6, 3.8), (43.7, 3.9))])]})

    result = run_fetch(handler)
    assert seen[0].method == "POST"
    assert seen[0].content.startswith(b"data=")
    assert "1" in result


def test_fetch_failure_returns_empty():
    """Server errors and non-JSON replies give an empty mapping."""
    assert run_fetch(lambda request: httpx.Response(504)) == {}
    assert run_fetch(lambda request: httpx.Response(200, content=b"<html>busy</html>")) == {}
