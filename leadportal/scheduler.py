"""
Background scheduler for automatic predictions.

Runs inside the FastAPI process on the same event loop.
Uses APScheduler to periodically:
    1. Sweep customers without predictions and score them (default every 2 minutes)
    2. Log prediction cache statistics (default hourly, read-only)

A tick that fires while a sweep is still running is dropped, not queued:
the next tick picks up whatever is still unscored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from leadportal import config
from leadportal.autopredict import AutoPredictService, job_busy
from leadportal.cache import PredictionCache

logger = logging.getLogger(__name__)


@dataclass
class JobState:
    """Run bookkeeping, reset on restart."""

    is_running: bool = False
    last_result: Optional[dict] = None
    last_run_time: Optional[datetime] = None
    total_runs: int = 0


class AutoPredictScheduler:
    """Owns the cron jobs and the overlap guard for auto-predict sweeps."""

    def __init__(
        self,
        service: AutoPredictService,
        cache: PredictionCache,
        schedule: str = config.AUTO_PREDICT_CRON,
        cache_stats_schedule: str = config.CACHE_STATS_CRON,
        enabled: bool = config.ENABLE_AUTO_PREDICT_CRON,
        timezone: str = config.SCHEDULER_TIMEZONE,
    ):
        self.service = service
        self.cache = cache
        self.schedule = schedule
        self.cache_stats_schedule = cache_stats_schedule
        self.enabled = enabled
        self.timezone = timezone
        self.state = JobState()
        self._trigger = CronTrigger.from_crontab(schedule, timezone=timezone)
        self._scheduler: Optional[AsyncIOScheduler] = None

    def start(self):
        """Register the cron jobs and start the APScheduler loop."""
        if not self.enabled:
            logger.info("Auto predict cron is disabled")
            return

        self._scheduler = AsyncIOScheduler(timezone=self.timezone)

        self._scheduler.add_job(
            self._tick,
            self._trigger,
            id="auto_predict",
            name="Auto predict sweep",
            replace_existing=True,
        )

        self._scheduler.add_job(
            self._log_cache_stats,
            CronTrigger.from_crontab(self.cache_stats_schedule, timezone=self.timezone),
            id="cache_stats",
            name="Prediction cache statistics",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info("Auto predict job started (schedule: %s)", self.schedule)
        logger.info("Cache stats job started (schedule: %s)", self.cache_stats_schedule)

    def stop(self):
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Auto predict scheduler stopped")
        self._scheduler = None

    @property
    def is_started(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def _run_sweep(self, limit: Optional[int] = None) -> dict:
        """Run one sweep; the caller has already taken the overlap guard."""
        try:
            result = await self.service.run_auto_predict_sweep(limit=limit)
        except Exception as e:
            logger.error("Auto predict job failed: %s", e)
            result = {"error": str(e), "timestamp": datetime.now().isoformat()}
        finally:
            self.state.is_running = False
            self.state.last_run_time = datetime.now().astimezone()
            self.state.total_runs += 1

        self.state.last_result = result
        return result

    async def _tick(self):
        if self.state.is_running:
            logger.info("Auto predict job already running, skipping tick")
            return

        self.state.is_running = True
        logger.info("Running auto predict job ...")
        result = await self._run_sweep()
        logger.info("Auto predict job completed: %s", result)

    def _log_cache_stats(self):
        logger.info("Prediction cache statistics: %s", self.cache.stats())

    async def trigger_manually(self, limit: Optional[int] = None) -> dict:
        """Run a sweep now (the /batch endpoint too), unless one is already in flight."""
        if self.state.is_running:
            return job_busy()

        self.state.is_running = True
        logger.info("Manual auto predict job triggered")
        return await self._run_sweep(limit)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def next_run_time(self) -> Optional[datetime]:
        if self.state.last_run_time is None:
            return None
        return self._trigger.get_next_fire_time(None, self.state.last_run_time)

    def get_status(self) -> dict:
        last_run = self.state.last_run_time
        next_run = self.next_run_time()
        return {
            "is_running": self.state.is_running or self.service.sweep_running,
            "enabled": self.enabled,
            "scheduler_started": self.is_started,
            "last_run_time": last_run.isoformat() if last_run else None,
            "next_run_time": next_run.isoformat() if next_run else None,
            "schedule": self.schedule,
            "cache_stats_schedule": self.cache_stats_schedule,
            "total_runs": self.state.total_runs,
            "last_result": self.state.last_result,
            "auto_predict_status": self.cache.get_status(),
            "cache_stats": self.cache.stats(),
            "background_tasks": self.service.pending_tasks,
        }
