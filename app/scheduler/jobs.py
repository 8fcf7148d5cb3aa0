"""
app/scheduler/jobs.py

APScheduler-based maintenance for the in-memory session registry.

Schedule
--------
  idle_session_sweep: every SESSION_SWEEP_INTERVAL_SECONDS (default 600)

Sessions idle longer than SESSION_IDLE_TTL_SECONDS (default 3600) are
discarded; a session with an open recommendation stream is always kept.
Durable evaluations, phase results and reports are untouched.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import SessionSettings, get_session_settings
from app.services.evaluation_service import EvaluationService, get_evaluation_service

logger = logging.getLogger(__name__)


def run_idle_session_sweep(
    service: EvaluationService | None = None,
    settings: SessionSettings | None = None,
) -> int:
    """
    Evict idle sessions. Returns the number of sessions discarded.
    """
    service = service or get_evaluation_service()
    settings = settings or get_session_settings()
    logger.info("Scheduler: idle_session_sweep starting")
    evicted = service.evict_idle_sessions(settings.idle_ttl_seconds)
    logger.info(
        "Scheduler: idle_session_sweep complete evicted=%d active=%d",
        evicted,
        service.active_session_count(),
    )
    return evicted


def build_scheduler(settings: SessionSettings | None = None) -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    settings = settings or get_session_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_idle_session_sweep,
        trigger="interval",
        seconds=settings.sweep_interval_seconds,
        id="idle_session_sweep",
        name="Idle session eviction",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=settings.sweep_interval_seconds,
    )

    return scheduler
