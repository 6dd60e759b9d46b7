"""Recurring backup scheduling.

Two triggers feed one serialized run path: a cron job (UTC) and a one-shot
startup job fired ``startup_delay_seconds`` after start.  Both call
``BackupScheduler.trigger``; a trigger that fires while a run is in
progress is skipped and logged.

Usage:
    scheduler = BackupScheduler(workflow, config.schedule)
    await scheduler.serve()     # until SIGINT/SIGTERM
"""

import asyncio
import contextlib
import logging
import signal
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger

from db_snapshot.backup.models import BackupRun
from db_snapshot.backup.workflow import BackupWorkflow
from db_snapshot.config.models import ScheduleConfig

logger = logging.getLogger(__name__)

SCHEDULED_JOB_ID = "scheduled_backup"
STARTUP_JOB_ID = "startup_backup"


class BackupScheduler:
    """Fires the backup workflow on a cron schedule plus once at startup.

    States are ``Idle`` and ``Running`` (``is_running``).  Workflow outcomes
    are logged and never change the schedule.

    Args:
        workflow: The backup cycle to run.
        schedule: Cron expression, startup delay and shutdown grace period.
        scheduler: Optional ``AsyncIOScheduler`` (one is created by default).
    """

    def __init__(
        self,
        workflow: BackupWorkflow,
        schedule: ScheduleConfig,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._workflow = workflow
        self._schedule = schedule
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._lock = asyncio.Lock()
        self._shutdown = asyncio.Event()
        self._current: asyncio.Task | None = None
        self._started = False

    @property
    def is_running(self) -> bool:
        """True while a backup cycle is executing."""
        return self._lock.locked()

    @property
    def next_run_time(self) -> datetime | None:
        """Next cron fire time, or ``None`` when not started."""
        if not self._started:
            return None
        job = self._scheduler.get_job(SCHEDULED_JOB_ID)
        return job.next_run_time if job else None

    def start(self) -> None:
        """Register both triggers and start the scheduler.

        Must be called from within a running event loop.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        if self._started:
            logger.warning("Scheduler already started")
            return

        cron = CronTrigger.from_crontab(self._schedule.cron, timezone=timezone.utc)
        self._scheduler.add_job(
            self.trigger,
            trigger=cron,
            args=["schedule"],
            id=SCHEDULED_JOB_ID,
            name="Scheduled backup",
            coalesce=True,
            replace_existing=True,
        )

        run_at = datetime.now(timezone.utc) + timedelta(
            seconds=self._schedule.startup_delay_seconds
        )
        self._scheduler.add_job(
            self.trigger,
            trigger=DateTrigger(run_date=run_at, timezone=timezone.utc),
            args=["startup"],
            id=STARTUP_JOB_ID,
            name="Startup backup",
            misfire_grace_time=None,
            replace_existing=True,
        )

        self._scheduler.start()
        self._started = True
        logger.info(
            "Backup scheduler started (cron=%r UTC, startup run at %s)",
            self._schedule.cron,
            run_at.isoformat(timespec="seconds"),
        )
        logger.info("Next scheduled backup: %s", self.next_run_time)

    async def trigger(self, source: str) -> BackupRun | None:
        """Run one backup cycle unless one is already in progress.

        Args:
            source: Trigger name recorded on the run.

        Returns:
            The ``BackupRun``, or ``None`` if the trigger was skipped.
        """
        if self._shutdown.is_set():
            logger.info("Shutdown requested; ignoring %s trigger", source)
            return None
        if self._lock.locked():
            logger.warning("Backup already in progress; skipping %s trigger", source)
            return None

        async with self._lock:
            self._current = asyncio.current_task()
            try:
                run = await self._workflow.run(trigger=source)
            except Exception:
                logger.exception("Backup cycle (%s) crashed", source)
                return None
            finally:
                self._current = None

        if run.succeeded:
            logger.info("Backup cycle (%s) succeeded", source)
        else:
            logger.error("Backup cycle (%s) failed at stage %s", source, run.failed_stage)
        return run

    def request_shutdown(self, signame: str | None = None) -> None:
        """Ask the scheduler to stop (safe to call from a signal handler)."""
        if signame:
            logger.info("Received %s. Shutting down...", signame)
        self._shutdown.set()

    async def stop(self) -> None:
        """Stop issuing triggers and give an in-flight run its grace period.

        A run still executing after ``shutdown_grace_seconds`` is cancelled.
        """
        self._shutdown.set()
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False

        task = self._current
        if task is None or task.done():
            return

        grace = self._schedule.shutdown_grace_seconds
        logger.info("Waiting up to %.0fs for the running backup to finish", grace)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Backup did not finish within %.0fs; cancelling", grace)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def serve(self) -> None:
        """Start, wait for SIGINT/SIGTERM, then stop gracefully."""
        self.start()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_shutdown, sig.name)
        try:
            await self._shutdown.wait()
        finally:
            await self.stop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        logger.info("Backup scheduler stopped")
