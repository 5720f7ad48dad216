import asyncio
import contextlib
import logging
from typing import Optional

from ...application.ports.attempt_tracker import AttemptTracker

logger = logging.getLogger(__name__)


class CleanupSweeper:
    """Periodically evicts attempt records that have been idle past retention."""

    def __init__(self, tracker: AttemptTracker, interval_seconds: float = 30 * 60,
                 name: str = "otp-attempt-sweeper") -> None:
        self.tracker = tracker
        self._interval = interval_seconds
        self._name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self._name)
        logger.info("%s started (every %ds)", self._name, self._interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
            logger.info("%s stopped", self._name)

    async def run_once(self) -> int:
        # Shard locks are plain threading locks; keep the event loop free.
        removed = await asyncio.to_thread(self.tracker.sweep)
        if removed:
            logger.info(f"Swept {removed} stale OTP attempt records")
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.run_once()
            except Exception:
                logger.exception("%s tick failed, will retry next interval", self._name)
