"""Diff successive vehicle snapshots into additions, removals and updates."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from transit_map.schemas.vehicle import Vehicle


@dataclass(frozen=True)
class Reconciliation:
    added: tuple[Vehicle, ...] = ()
    removed: tuple[str, ...] = ()  # vehicle ids
    updated: tuple[Vehicle, ...] = ()  # present before and now, with changed fields
    active: Mapping[str, Vehicle] = field(default_factory=lambda: MappingProxyType({}))


def reconcile(previous: Mapping[str, Vehicle], current: Iterable[Vehicle]) -> Reconciliation:
    """Compare the previous keyed snapshot with the new input.

    Neither argument is modified; the returned ``active`` mapping becomes the
    caller's next ``previous``. A vehicle id repeated in ``current`` keeps its
    last occurrence.
    """
    active: dict[str, Vehicle] = {}
    for vehicle in current:
        active[vehicle.vehicle_id] = vehicle

    added = []
    updated = []
    for vehicle_id, vehicle in active.items():
        before = previous.get(vehicle_id)
        if before is None:
            added.append(vehicle)
        elif before != vehicle:
            updated.append(vehicle)

    removed = tuple(vid for vid in previous if vid not in active)
    return Reconciliation(
        added=tuple(added),
        removed=removed,
        updated=tuple(updated),
        active=MappingProxyType(active),
    )
