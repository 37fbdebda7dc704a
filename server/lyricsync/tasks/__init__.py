"""Celery task definitions.

The worker runs catalog-wide pipeline runs on a schedule so they do not
depend on someone logging in. Runs started here use their own pipeline
instance in the worker process; the single-flight gate is per process.
"""

import asyncio
import logging
import platform
from datetime import timedelta

from celery import Celery

from lyricsync.config import settings
from lyricsync.models.pipeline import PipelineMode

logger = logging.getLogger(__name__)

celery_app = Celery(
    "lyricsync",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # Retry broker connection on startup so the worker doesn't crash
    # if Redis is briefly unavailable.
    broker_connection_retry_on_startup=True,
    broker_connection_retry=True,
    broker_connection_max_retries=10,
    broker_connection_timeout=30,
    broker_transport_options={
        "socket_keepalive": True,
        "socket_keepalive_options": {},
        "socket_connect_timeout": 30,
        "retry_on_timeout": True,
        "health_check_interval": 30,
    },
)

# billiard's prefork pool misbehaves on Windows shutdown
if platform.system() == "Windows":
    celery_app.conf.update(
        worker_pool="solo",
        worker_concurrency=1,
    )


def build_beat_schedule() -> dict[str, dict]:
    schedule: dict[str, dict] = {}
    if settings.schedule_full_sync_hours > 0:
        schedule["lyrics-full-sync"] = {
            "task": "lyricsync.run_lyrics_pipeline",
            "schedule": timedelta(hours=settings.schedule_full_sync_hours),
            "args": ("full",),
        }
    if settings.schedule_force_retime_days > 0:
        schedule["lyrics-force-retime"] = {
            "task": "lyricsync.run_lyrics_pipeline",
            "schedule": timedelta(days=settings.schedule_force_retime_days),
            "args": ("alignment_force",),
        }
    return schedule


celery_app.conf.beat_schedule = build_beat_schedule()


async def _run(mode: PipelineMode) -> dict:
    from lyricsync.services.pipeline import get_pipeline

    pipeline = get_pipeline()
    try:
        started = await pipeline.run("schedule", mode)
    finally:
        await pipeline.close()
    return {"started": started, "status": pipeline.status().model_dump(by_alias=True, mode="json")}


@celery_app.task(name="lyricsync.run_lyrics_pipeline")
def run_lyrics_pipeline(mode: PipelineMode = "full") -> dict:
    """Run the pipeline to completion inside the worker."""
    logger.info("Scheduled lyrics pipeline run (%s)", mode)
    return asyncio.run(_run(mode))
