"""Stop REST API endpoints."""

from fastapi import APIRouter, HTTPException

from transit_map.core.transit_service import BBox
from transit_map.schemas.route import StopInfo

router = APIRouter(prefix="/api/stops", tags=["stops"])

# Will be set by main.py
service = None


def parse_bbox(raw: str) -> BBox:
    """Parse 'minLng,minLat,maxLng,maxLat'."""
    parts = raw.split(",")
    if len(parts) != 4:
        raise ValueError(f"expected 4 values, got {len(parts)}")
    values = [float(p) for p in parts]
    if any(v != v or v in (float("inf"), float("-inf")) for v in values):
        raise ValueError("bbox values must be finite")
    return BBox(*values)


@router.get("", response_model=list[StopInfo])
async def list_stops(bbox: str | None = None):
    """Get all stops, optionally restricted to a bounding box."""
    if service is None or service.snapshot is None:
        raise HTTPException(status_code=503, detail="Schedule not loaded yet")
    area = None
    if bbox is not None:
        try:
            area = parse_bbox(bbox)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail="Invalid bbox format. Expected: minLng,minLat,maxLng,maxLat",
            )
    return [StopInfo(id=s.stop_id, name=s.name, lat=s.lat, lng=s.lng) for s in service.get_stops(area)]
