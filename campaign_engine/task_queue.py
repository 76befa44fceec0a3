"""
campaign_engine/task_queue.py -- Serial, rate-limited task runner.

Every call to the generation backend goes through a ``SerialTaskQueue``:
tasks run one at a time, in submission order, and a task never starts
sooner than ``min_interval_ms`` after the previous one finished.  The
first task starts immediately and nothing waits after the last one.

Usage:
    queue = SerialTaskQueue(min_interval_ms=config.rate_limit_ms)
    result = await queue.submit(generate, prompt, temperature=0.3)

``sleep`` and ``clock`` are injectable so the pacing can be tested without
real delays.
"""

import asyncio
import logging
import time

logger = logging.getLogger(__name__)


class SerialTaskQueue:
    """Single-worker queue with an enforced minimum gap between tasks.

    Parameters
    ----------
    min_interval_ms : int
        Minimum time between the end of one task and the start of the next.
    sleep : coroutine function, optional
        Used to wait out the gap (default ``asyncio.sleep``).
    clock : callable, optional
        Monotonic clock in seconds (default ``time.monotonic``).
    """

    def __init__(self, min_interval_ms: int = 0, *, sleep=asyncio.sleep, clock=time.monotonic):
        self._min_interval = max(0, min_interval_ms) / 1000.0
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_finished: float | None = None
        self.tasks_run = 0

    async def submit(self, func, *args, **kwargs):
        """Run ``await func(*args, **kwargs)`` once the queue is free.

        Exceptions raised by the task propagate to the caller; the gap
        before the next task is still enforced.
        """
        async with self._lock:
            await self._wait_for_slot()
            try:
                return await func(*args, **kwargs)
            finally:
                self._last_finished = self._clock()
                self.tasks_run += 1

    async def _wait_for_slot(self) -> None:
        if self._last_finished is None or self._min_interval <= 0:
            return
        remaining = self._min_interval - (self._clock() - self._last_finished)
        if remaining > 0:
            logger.debug("Rate limit: waiting %.3fs before next task", remaining)
            await self._sleep(remaining)
