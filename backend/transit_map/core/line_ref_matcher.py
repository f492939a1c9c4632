"""Match schedule line short names (e.g. "T1") to OSM relation refs (e.g. "1")."""

from collections.abc import Mapping, Sequence

from transit_map.core.osm_geometry import Coordinate

TRAM_PREFIX = "T"


def find_longest_by_prefix(
    prefix: str, paths: Mapping[str, Sequence[Coordinate]],
) -> Sequence[Coordinate] | None:
    """Among refs starting with prefix ("4A", "4B" for "4"), return the longest geometry."""
    best = None
    for ref, coords in paths.items():
        if ref.startswith(prefix) and (best is None or len(coords) > len(best)):
            best = coords
    return best


def match_ref(
    short_name: str, paths: Mapping[str, Sequence[Coordinate]],
) -> Sequence[Coordinate] | None:
    """Return the OSM geometry for a line, or None when nothing matches.

    Tried in order: exact ref, ref without the "T" prefix, ref with a "T"
    prefix added, then the longest ref that starts with the bare name.
    """
    if not short_name or not paths:
        return None

    direct = paths.get(short_name)
    if direct:
        return direct

    bare = short_name[len(TRAM_PREFIX):] if short_name.startswith(TRAM_PREFIX) else None
    if bare:
        stripped = paths.get(bare)
        if stripped:
            return stripped

    prefixed = paths.get(f"{TRAM_PREFIX}{short_name}")
    if prefixed:
        return prefixed

    return find_longest_by_prefix(bare or short_name, paths)
