"""
Background sweeper for rate-limit windows, old attempts and sessions.

Runs inside the app process; `python -m smsauth.jobs.data_retention` does the
same deletion from cron for deployments that prefer that.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Optional

from ...core.clock import Clock, system_clock
from ...core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


class StoreSweeper:
    """Worker that periodically deletes expired limiter state"""

    def __init__(
        self,
        window_store,
        attempt_log=None,
        sessions=None,
        interval_seconds: int = 300,
        attempt_retention: timedelta = timedelta(days=7),
        clock: Clock = system_clock,
    ):
        self.window_store = window_store
        self.attempt_log = attempt_log
        self.sessions = sessions
        self.interval_seconds = interval_seconds
        self.attempt_retention = attempt_retention
        self.clock = clock
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        if self.running:
            logger.warning("[RateLimit] Sweeper is already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"[RateLimit] Sweeper started (every {self.interval_seconds}s)")

    async def stop(self):
        if not self.running:
            return

        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("[RateLimit] Sweeper stopped")

    async def _run(self):
        while self.running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[RateLimit] Error in sweeper: {e}", exc_info=True)

    async def sweep_once(self) -> dict:
        """Run one sweep pass. Store outages are logged and skipped."""
        now = self.clock.now()
        results = {"windows": 0, "attempts": 0, "sessions": 0}

        try:
            results["windows"] = await asyncio.to_thread(self.window_store.sweep, now)
        except StoreUnavailable as e:
            logger.warning(f"[RateLimit] Window sweep skipped: {e}")

        if self.attempt_log is not None:
            try:
                results["attempts"] = await asyncio.to_thread(self.attempt_log.sweep, now - self.attempt_retention)
            except StoreUnavailable as e:
                logger.warning(f"[RateLimit] Attempt sweep skipped: {e}")

        if self.sessions is not None:
            results["sessions"] = self.sessions.sweep(now)

        if any(results.values()):
            logger.info(f"[RateLimit] Swept {results}")
        return results
