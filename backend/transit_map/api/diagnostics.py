"""Diagnostics API for the schedule and geometry pipeline."""

from fastapi import APIRouter

router = APIRouter(prefix="/api/diagnostics", tags=["diagnostics"])

# Will be set by main.py
service = None


@router.get("")
async def get_diagnostics():
    """Counts per table, paths per geometry source, routes without a path."""
    if service is None:
        return {"error": "Service not initialized"}
    diag = service.get_diagnostics()
    if diag is None:
        return {"error": "Schedule not loaded yet"}
    return diag
