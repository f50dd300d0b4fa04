"""Sweep Scheduler - Runs the reminder sweep on a fixed interval

One job, never overlapping itself in this process (``max_instances=1``);
missed runs are coalesced into one. Overlap with sweeps of other servers is
handled by the State Tracker's compare-and-set writes.
"""
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..engine.sweep import ReminderEngine
from ..utils.logger import get_logger

logger = get_logger(__name__)

SWEEP_JOB_ID = "reminder_sweep"


class SweepScheduler:
    """APScheduler wrapper around ReminderEngine.run_sweep"""

    def __init__(self, engine: ReminderEngine, interval_seconds: Optional[int] = None):
        self.engine = engine
        self.interval_seconds = interval_seconds or settings.sweep_interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self._sweep_count = 0

    def start(self) -> None:
        """Start the scheduler (needs a running event loop)"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Reminder sweep",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"Sweep scheduler started, interval {self.interval_seconds}s")

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        self._is_running = False
        logger.info("Sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def sweep_count(self) -> int:
        return self._sweep_count

    async def _run_sweep(self) -> None:
        try:
            result = await self.engine.run_sweep()
            self._sweep_count += 1
            logger.debug(
                f"Scheduled sweep {result.sweep_id} took {result.duration_ms}ms",
                extra={"sweep_id": result.sweep_id}
            )
        except Exception as e:
            # Keep the job alive; the next tick retries
            logger.error(f"Scheduled sweep failed: {e}", exc_info=True)
