import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = float(os.getenv("SIGNAGE_CACHE_TTL_SEC", "300"))


@dataclass
class CacheEntry:
    key: str
    value: Any
    computed_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return (now - self.computed_at) < self.ttl


class ResponseCache:
    """
    Short-TTL memoization for device API responses.

    Concurrent callers asking for the same key while it is being computed
    await the same task instead of issuing duplicate requests. Failures are
    never stored, so the next caller retries.
    """

    def __init__(self, ttl_sec: float = DEFAULT_TTL_SEC, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_sec
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        # Bumped by clear(); a computation started under an older generation
        # is never written back.
        self._epoch = 0
        self._generations: dict[str, int] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    async def get(self, key: str, compute: Callable[[], Awaitable[Any]], force: bool = False) -> Any:
        if not force:
            entry = self._entries.get(key)
            if entry is not None and entry.is_fresh(self._clock()):
                return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute(key, compute, self._generation(key)))
            self._inflight[key] = task
        # Shield so a cancelled waiter does not cancel the shared computation.
        return await asyncio.shield(task)

    def _generation(self, key: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    async def _compute(self, key: str, compute: Callable[[], Awaitable[Any]], generation: tuple[int, int]) -> Any:
        try:
            value = await compute()
            if generation == self._generation(key):
                self._entries[key] = CacheEntry(key=key, value=value, computed_at=self._clock(), ttl=self._ttl)
            return value
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    def peek(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry.value

    def clear(self, key: str | None = None) -> None:
        # Callers already awaiting an in-flight task still get its result;
        # later callers start a fresh computation.
        if key is None:
            count = len(self._entries)
            self._epoch += 1
            self._entries.clear()
            self._inflight.clear()
            logger.info("Response cache cleared (%d entries)", count)
            return
        self._generations[key] = self._generations.get(key, 0) + 1
        self._entries.pop(key, None)
        self._inflight.pop(key, None)

    def stats(self) -> dict[str, int | float]:
        now = self._clock()
        fresh = sum(1 for entry in self._entries.values() if entry.is_fresh(now))
        return {
            "entries": len(self._entries),
            "fresh_entries": fresh,
            "inflight": len(self._inflight),
            "ttl_sec": self._ttl,
        }
