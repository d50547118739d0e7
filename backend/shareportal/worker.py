from __future__ import annotations

import asyncio
import logging

from celery import Celery

from shareportal.core.config import settings
from shareportal.db.session import async_session_factory, engine
from shareportal.services.maintenance import run_maintenance

logger = logging.getLogger(__name__)

celery_app = Celery(
    "share_portal",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    beat_schedule={
        "portal-maintenance": {
            "task": "run_maintenance",
            "schedule": settings.maintenance_interval_minutes * 60.0,
        },
    },
)


async def _run_maintenance() -> dict[str, int]:
    try:
        async with async_session_factory() as db:
            return await run_maintenance(db)
    finally:
        # Each task runs in a fresh event loop; pooled connections cannot cross it.
        await engine.dispose()


@celery_app.task(name="run_maintenance")
def run_maintenance_task() -> dict[str, int]:
    summary = asyncio.run(_run_maintenance())
    logger.info("Maintenance task summary %s", summary)
    return summary
