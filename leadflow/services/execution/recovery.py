"""Stale-run sweeper.

A run whose process died mid-walk leaves its log in `running` forever.
The sweeper runs as a background task and closes such logs as `failed`
once they have gone `ttl_seconds` without an update. Runs are never
resumed; the sweeper only makes the audit trail truthful.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from leadflow.core.database import Database
from leadflow.core.logging import get_logger

logger = get_logger(__name__)

STALE_RUN_ERROR = "Run abandoned: no progress recorded for {ttl}s"


class StaleRunSweeper:
    """Background task that fails workflow logs stuck in `running`."""

    def __init__(self, database: Database,
                 ttl_seconds: int = 6 * 3600,
                 sweep_interval: int = 300,
                 clock: Optional[Callable[[], datetime]] = None):
        """Initialize sweeper.

        Args:
            database: Database holding workflow logs
            ttl_seconds: Seconds without an update before a run is abandoned
            sweep_interval: Seconds between sweep runs
            clock: Returns the current aware datetime
        """
        self.database = database
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweeper background task."""
        if self._running:
            logger.warning("Stale run sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info("Stale run sweeper started",
                    ttl_seconds=self.ttl_seconds,
                    sweep_interval=self.sweep_interval)

    async def stop(self) -> None:
        """Stop the sweeper."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stale run sweeper stopped")

    async def _sweep_loop(self) -> None:
        """Main sweep loop - runs until stopped."""
        while self._running:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error("Sweep iteration failed", error=str(e))

            await asyncio.sleep(self.sweep_interval)

    async def sweep_once(self) -> List[str]:
        """Fail every stale running log.

        Returns:
            Ids of the logs that were closed
        """
        cutoff = self._clock() - timedelta(seconds=self.ttl_seconds)
        closed = await self.database.fail_stale_running_logs(
            cutoff, STALE_RUN_ERROR.format(ttl=self.ttl_seconds)
        )
        if closed:
            logger.warning("Closed abandoned workflow runs", count=len(closed), log_ids=closed)
        return closed


# Global sweeper instance (initialized by main.py)
_sweeper: Optional[StaleRunSweeper] = None


def get_stale_run_sweeper() -> Optional[StaleRunSweeper]:
    """Get global sweeper instance."""
    return _sweeper


def set_stale_run_sweeper(sweeper: Optional[StaleRunSweeper]) -> None:
    """Set global sweeper instance."""
    global _sweeper
    _sweeper = sweeper
