"""BackupScheduler -- recurring automated backups with overlap prevention.

Architecture:
  - A long-lived asyncio task ticks every ``interval_seconds``
  - Each tick starts a run in its own task, so a slow run never delays the
    timer
  - A run that starts while another is still in flight is skipped, not
    queued
  - Run errors are logged; they never escape the timer

The in-flight flag only covers runs started through this scheduler; a
manually triggered backup can still overlap a scheduled one.

Usage:
    scheduler = BackupScheduler.from_settings(
        config.scheduler,
        job=lambda: run_automated_backup(adapter, runner, store, config),
    )
    await scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from storefront_backup.config.models import SchedulerSettings

logger = logging.getLogger(__name__)


class BackupScheduler:
    """Owns the backup timer, its task, and the in-flight flag."""

    def __init__(
        self,
        job: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        run_on_startup: bool = False,
        enabled: bool = True,
    ):
        """
        Args:
            job: Async callable performing one automated backup.
            interval_seconds: Seconds between ticks.
            run_on_startup: Trigger a run immediately on ``start()``.
            enabled: When False, ``start()`` does nothing.
        """
        self._job = job
        self._interval = interval_seconds
        self._run_on_startup = run_on_startup
        self._enabled = enabled
        self._task: Optional[asyncio.Task] = None
        self._runs: set[asyncio.Task] = set()
        self._in_flight = False
        self.completed_runs = 0
        self.failed_runs = 0
        self.skipped_runs = 0

    @classmethod
    def from_settings(
        cls,
        settings: SchedulerSettings,
        job: Callable[[], Awaitable[Any]],
    ) -> "BackupScheduler":
        return cls(
            job,
            interval_seconds=settings.interval_seconds,
            run_on_startup=settings.run_on_startup,
            enabled=settings.enabled,
        )

    @property
    def is_running(self) -> bool:
        """True while the timer task is active."""
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        """True while a backup run is executing."""
        return self._in_flight

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Start the timer.  Returns False if disabled or already started."""
        if not self._enabled:
            logger.info("Auto backup scheduler disabled")
            return False
        if self.is_running:
            return False

        self._task = asyncio.create_task(self._loop(), name="backup-scheduler")
        if self._run_on_startup:
            self._spawn_run()

        logger.info(
            f"Auto backup scheduler enabled (every {round(self._interval / 60)} minutes)"
        )
        return True

    async def stop(self) -> None:
        """Stop the timer and wait for any in-flight run to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._runs:
            await asyncio.gather(*self._runs, return_exceptions=True)
        logger.info("Auto backup scheduler stopped")

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def trigger(self) -> bool:
        """Run one backup now unless one is already in flight.

        Returns:
            False if the run was skipped, True if it ran (even if it failed).
        """
        if self._in_flight:
            self.skipped_runs += 1
            logger.info("Auto backup still running; skipping this tick")
            return False

        self._in_flight = True
        try:
            result = await self._job()
            backup = getattr(result, "backup", None)
            self.completed_runs += 1
            logger.info(f"Auto backup completed: {getattr(backup, 'filename', 'unknown')}")
        except Exception as e:
            self.failed_runs += 1
            logger.error(f"Auto backup failed: {e}")
        finally:
            self._in_flight = False
        return True

    def _spawn_run(self) -> None:
        task = asyncio.create_task(self.trigger(), name="backup-run")
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self._spawn_run()
