from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def decayed(pool: int, floor: int, step: int) -> int:
    """Pool value after one tick; never drops below ``floor``."""
    if pool <= floor:
        return pool
    return max(floor, pool - step)


class ScoreDecay:
    """Repeating task draining a session's score pool toward a floor.

    The process only reads and writes the pool through the two callables it
    is given, so it never keeps the session alive on its own. ``stop`` is
    advisory: a tick that already woke up may still apply, which is harmless
    because a tick can only move the pool down to the floor.
    """

    def __init__(
        self,
        label: str,
        read_pool: Callable[[], int],
        write_pool: Callable[[int], None],
        *,
        floor: int,
        step: int,
        interval_sec: float,
    ):
        self.label = label
        self._read_pool = read_pool
        self._write_pool = write_pool
        self.floor = floor
        self.step = step
        self.interval_sec = interval_sec
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            raise RuntimeError(f"Score decay already running for {self.label}")
        self._task = asyncio.create_task(self._run(), name=f"score-decay:{self.label}")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def tick(self) -> bool:
        """Apply one decrement. Returns False once the floor is reached."""
        current = self._read_pool()
        if current <= self.floor:
            return False
        updated = decayed(current, self.floor, self.step)
        self._write_pool(updated)
        logger.debug("Score[%s]: %s", self.label, updated)
        return updated > self.floor

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            if not self.tick():
                logger.debug("Score decay for %s reached floor %s", self.label, self.floor)
                return
