import asyncio
import logging
import os
from datetime import datetime

from contentsync.errors import ConfigurationError

logger = logging.getLogger(__name__)

SYNC_WARMUP_SEC = float(os.getenv("SIGNAGE_SYNC_WARMUP_SEC", "30"))
SYNC_INTERVAL_SEC = float(os.getenv("SIGNAGE_SYNC_INTERVAL_SEC", str(15 * 60)))
SYNC_GRACE_SEC = float(os.getenv("SIGNAGE_SYNC_GRACE_SEC", "10"))

TRIGGER_ACCEPTED = "accepted"
TRIGGER_ALREADY_RUNNING = "already_running"
TRIGGER_REJECTED = "rejected"


class SyncScheduler:
    """
    Drives the reconciliation job: warm-up delay, one tick, then a fixed
    interval until stop().

    At most one tick runs at a time. Manual triggers during a tick are
    answered with "already_running" and scheduled ticks that collide with a
    manual one are skipped. stop() stops new ticks immediately, tells the
    in-flight tick to dispatch no further screens and waits a bounded grace
    period before cancelling it.
    """

    def __init__(
        self,
        job,
        cache=None,
        warmup_sec: float = SYNC_WARMUP_SEC,
        interval_sec: float = SYNC_INTERVAL_SEC,
        grace_sec: float = SYNC_GRACE_SEC,
    ) -> None:
        self._job = job
        self._cache = cache
        self._warmup_sec = warmup_sec
        self._interval_sec = interval_sec
        self._grace_sec = grace_sec
        self._stop_event = asyncio.Event()
        self._stopping = False
        self._loop_task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None
        self.last_error: str | None = None
        self.last_error_at: datetime | None = None
        self.ticks_completed = 0

    @property
    def is_running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def is_started(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        if self.is_started:
            return
        self._stopping = False
        self._stop_event.clear()
        self._loop_task = asyncio.create_task(self._loop())
        logger.info(
            "Content sync scheduled: first run in %.0fs, then every %.0fs",
            self._warmup_sec,
            self._interval_sec,
        )

    async def _wait_for_stop(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _loop(self) -> None:
        if await self._wait_for_stop(self._warmup_sec):
            return
        while not self._stop_event.is_set():
            task = self._start_tick(force=False)
            if task is None:
                logger.info("Scheduled sync skipped: a sync is already running")
            else:
                await asyncio.shield(task)
            if await self._wait_for_stop(self._interval_sec):
                return

    def _start_tick(self, force: bool) -> asyncio.Task | None:
        if self.is_running:
            return None
        self._tick_task = asyncio.create_task(self._tick(force))
        return self._tick_task

    async def _tick(self, force: bool) -> None:
        if force and self._cache is not None:
            self._cache.clear()
        try:
            await self._job.run(stop_event=self._stop_event)
            self.last_error = None
        except ConfigurationError as exc:
            self.last_error = str(exc)
            self.last_error_at = datetime.utcnow()
            logger.error("Content sync aborted: %s", exc)
        except Exception as exc:
            self.last_error = f"{type(exc).__name__}: {exc}"
            self.last_error_at = datetime.utcnow()
            logger.exception("Content sync failed")
        finally:
            self.ticks_completed += 1

    def trigger(self, force: bool = False) -> str:
        if self._stopping:
            return TRIGGER_REJECTED
        if not self._job.is_configured():
            logger.warning("Manual sync rejected: device API credentials are not configured")
            return TRIGGER_REJECTED
        if self._start_tick(force) is None:
            return TRIGGER_ALREADY_RUNNING
        logger.info("Manual sync accepted (force=%s)", force)
        return TRIGGER_ACCEPTED

    async def wait_idle(self) -> None:
        task = self._tick_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def stop(self) -> None:
        self._stopping = True
        self._stop_event.set()

        loop_task = self._loop_task
        self._loop_task = None
        if loop_task is not None:
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass

        tick = self._tick_task
        if tick is not None and not tick.done():
            try:
                await asyncio.wait_for(asyncio.shield(tick), timeout=self._grace_sec)
            except asyncio.TimeoutError:
                logger.warning("In-flight sync did not finish within %.0fs; cancelling", self._grace_sec)
                tick.cancel()
                try:
                    await tick
                except asyncio.CancelledError:
                    pass
        logger.info("Content sync scheduler stopped")
