"""Line and route-path REST API endpoints."""

from fastapi import APIRouter, HTTPException

from transit_map.schemas.route import LineInfo, ResolvedPath

router = APIRouter(prefix="/api", tags=["lines"])

# Will be set by main.py
service = None


def _require_schedule():
    if service is None or service.snapshot is None:
        raise HTTPException(status_code=503, detail="Schedule not loaded yet")
    return service


@router.get("/lines", response_model=list[LineInfo])
async def list_lines():
    """Get all lines, trams first."""
    return _require_schedule().get_lines()


@router.get("/route-paths", response_model=list[ResolvedPath])
async def list_route_paths():
    """Get one resolved path per line, coordinates as [lon, lat]."""
    return list(_require_schedule().get_route_paths())
