from pydantic import BaseModel, ConfigDict

from transit_map.schemas.route import RouteKind


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class LineRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    kind: RouteKind
    color: str


class Vehicle(BaseModel):
    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    position: Position
    bearing: float
    line: LineRef
    headsign: str
    timestamp: int  # epoch seconds


class VehicleSnapshot(BaseModel):
    type: str = "snapshot"
    vehicles: list[Vehicle]


class VehicleUpdate(BaseModel):
    type: str = "update"
    vehicles: list[Vehicle]
    removed: list[str] = []
