"""
Embedding call pacing.

The orchestrator awaits ``pacer.wait()`` after every embedded chunk. This
is a local throughput cap that keeps a single document from bursting the
embedding provider; it is not a global rate limiter. A TokenBucketPacer
instance can be shared across pipelines when the host wants an aggregate
cap. Sharing is per thread: the bucket serialises waiters of one event
loop, and a new loop (one per Celery task under run_async) gets a fresh
lock while the token count carries over.

The sleep coroutine is injectable so tests can run without real waits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class PacingPolicy(ABC):
    """Awaited between consecutive embedding calls."""

    @abstractmethod
    async def wait(self) -> None:
        ...


class NoPacing(PacingPolicy):
    async def wait(self) -> None:
        return None


class FixedIntervalPacer(PacingPolicy):
    """Sleep a fixed interval after every call (100 ms by default)."""

    def __init__(self, interval_s: float = 0.1, sleep: SleepFn = asyncio.sleep) -> None:
        if interval_s < 0:
            raise ValueError("interval_s must be >= 0")
        self.interval_s = interval_s
        self._sleep = sleep

    async def wait(self) -> None:
        if self.interval_s > 0:
            await self._sleep(self.interval_s)


class TokenBucketPacer(PacingPolicy):
    """
    Classic token bucket: ``rate`` tokens per second, bursts up to ``capacity``.

    Each wait() consumes one token, sleeping until one is available.
    """

    def __init__(
        self,
        rate:     float,
        capacity: int = 1,
        sleep:    SleepFn = asyncio.sleep,
        clock:    Callable[[], float] = time.monotonic,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.rate = rate
        self.capacity = capacity
        self._sleep = sleep
        self._clock = clock
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def _loop_lock(self) -> asyncio.Lock:
        # asyncio.Lock binds to the loop it first waits on
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.capacity), self._tokens + elapsed * self.rate)
        self._updated = now

    async def wait(self) -> None:
        async with self._loop_lock():
            self._refill()
            if self._tokens < 1.0:
                delay = (1.0 - self._tokens) / self.rate
                logger.debug("TokenBucketPacer | throttled delay_s=%.3f", delay)
                await self._sleep(delay)
                self._refill()
                # Clock may not have advanced (injected sleep); count the wait as paid
                self._tokens = max(self._tokens, 1.0)
            self._tokens -= 1.0


def pacer_from_settings() -> PacingPolicy:
    from docpipeline.core.config import settings

    if settings.embed_pacing_interval_ms <= 0:
        return NoPacing()
    return FixedIntervalPacer(settings.embed_pacing_interval_ms / 1000)
