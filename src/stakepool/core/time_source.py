from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger("stakepool.core.time_source")

TickProvider = Callable[[], int]


class ManualTickSource:
    """
    Deterministic, monotonically non-decreasing tick counter.

    Stands in for block height in tests and scenario replays. The pool only
    ever calls it; advancing it is the caller's job.
    """

    def __init__(self, start_tick: int = 0):
        if not isinstance(start_tick, int) or start_tick < 0:
            raise ValueError("Start tick must be a non-negative integer.")
        self._tick = start_tick
        self._lock = threading.RLock()

    def __call__(self) -> int:
        return self._tick

    @property
    def tick(self) -> int:
        return self._tick

    def advance(self, ticks: int = 1) -> int:
        """Moves the counter forward by `ticks` and returns the new tick."""
        if not isinstance(ticks, int) or ticks < 0:
            raise ValueError("Ticks to advance must be a non-negative integer.")
        with self._lock:
            self._tick += ticks
            return self._tick

    def advance_to(self, tick: int) -> int:
        """Moves the counter to `tick`; moving backwards is rejected."""
        if not isinstance(tick, int):
            raise ValueError("Target tick must be an integer.")
        with self._lock:
            if tick < self._tick:
                raise ValueError(f"Tick source is monotonic: cannot move from {self._tick} back to {tick}.")
            self._tick = tick
            return self._tick


def read_tick(provider: TickProvider) -> int:
    """Reads the current tick from a provider, insisting on a non-negative integer."""
    tick = provider()
    if isinstance(tick, bool) or not isinstance(tick, int):
        if isinstance(tick, float) and tick.is_integer():
            tick = int(tick)
        else:
            raise ValueError(f"tick_provider must return an integer tick, got {tick!r}.")
    if tick < 0:
        raise ValueError(f"tick_provider returned a negative tick ({tick}).")
    return tick
