"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from transit_map.api import diagnostics, lines, stops, vehicles, ws
from transit_map.config import settings
from transit_map.core.broadcaster import Broadcaster
from transit_map.core.scheduler import create_scheduler
from transit_map.core.transit_service import TransitService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    client = httpx.AsyncClient(follow_redirects=True)
    broadcaster = Broadcaster()
    await broadcaster.connect()

    service = TransitService.from_settings(client, broadcaster)

    # Wire up API modules
    ws.broadcaster = broadcaster
    lines.service = service
    stops.service = service
    vehicles.service = service
    diagnostics.service = service

    # Initial load; on failure the scheduler retries at the next refresh
    await service.refresh_schedule()
    if service.snapshot is None:
        logger.error("Initial schedule load failed - API will return 503 until the next refresh")

    scheduler = create_scheduler(service)
    scheduler.start()
    logger.info("Transit map started - polling GTFS-RT every %ds", settings.poll_interval_seconds)

    yield

    scheduler.shutdown(wait=False)
    await client.aclose()
    await broadcaster.close()
    logger.info("Transit map shut down")


app = FastAPI(
    title="Transit Map",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(lines.router)
app.include_router(stops.router)
app.include_router(vehicles.router)
app.include_router(diagnostics.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
