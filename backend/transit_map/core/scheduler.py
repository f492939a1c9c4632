"""Periodic jobs that keep the transit snapshots current."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler(service) -> AsyncIOScheduler:
    """Register the vehicle poll and schedule refresh jobs of ``service``.

    Each job runs one instance at a time; an overrunning poll skips the next
    tick rather than stacking up.
    """
    from transit_map.config import settings

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        service.poll_vehicles,
        "interval",
        seconds=settings.poll_interval_seconds,
        id="poll_vehicles",
        name="Refresh vehicle positions from GTFS-RT feeds",
        max_instances=1,
    )
    scheduler.add_job(
        service.refresh_schedule,
        "interval",
        hours=settings.schedule_refresh_hours,
        id="refresh_schedule",
        name="Rebuild schedule snapshot and route paths",
        max_instances=1,
    )
    logger.info(
        "Jobs registered: vehicles every %ss, schedule every %sh",
        settings.poll_interval_seconds, settings.schedule_refresh_hours,
    )
    return scheduler
