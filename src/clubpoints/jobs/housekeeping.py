"""Background scheduler for event housekeeping."""

from __future__ import annotations

import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from ..core.config import get_settings
from ..core.database import SessionLocal
from ..services.event_service import complete_ended_events

logger = logging.getLogger(__name__)

_scheduler = AsyncIOScheduler(timezone="UTC")


def run_housekeeping_once(current_time: datetime | None = None) -> int:
    """Mark ended events COMPLETED; returns how many changed."""

    session = SessionLocal()
    try:
        completed = complete_ended_events(session, now=current_time)
        session.commit()
        return completed
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def _execute_housekeeping() -> None:
    try:
        completed = run_housekeeping_once()
        logger.info("housekeeping completed %s ended events", completed)
    except Exception:  # pragma: no cover - safeguard for background job
        logger.exception("housekeeping job failed")


def register_scheduler(app: FastAPI) -> None:
    """Attach APScheduler lifecycle hooks to the FastAPI app."""

    settings = get_settings()
    if not settings.scheduler_enabled:
        return

    @app.on_event("startup")
    async def start_scheduler() -> None:
        if not _scheduler.running:
            _scheduler.add_job(
                _execute_housekeeping,
                "interval",
                minutes=settings.housekeeping_interval_minutes,
                id="event_housekeeping",
                replace_existing=True,
                misfire_grace_time=300,
            )
            _scheduler.start()
            logger.info("housekeeping scheduler started")

    @app.on_event("shutdown")
    async def shutdown_scheduler() -> None:
        if _scheduler.running:
            _scheduler.shutdown(wait=False)
            logger.info("housekeeping scheduler stopped")
