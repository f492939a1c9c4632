"""Vehicle REST API endpoints."""

from fastapi import APIRouter

from transit_map.schemas.vehicle import Vehicle

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])

# Will be set by main.py
service = None


@router.get("", response_model=list[Vehicle])
async def list_vehicles(line: str | None = None):
    """Get all currently active vehicles, optionally for one line name."""
    if service is None:
        return []
    return service.get_vehicles(line)


@router.get("/{vehicle_id}", response_model=Vehicle | None)
async def get_vehicle(vehicle_id: str):
    """Get a specific vehicle by ID."""
    if service is None:
        return None
    return service.vehicles.get(vehicle_id)
