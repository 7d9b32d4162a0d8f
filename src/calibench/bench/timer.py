"""Timer control for a single benchmark run.

The timer accumulates running time in nanoseconds and supports one
level of pause/resume so that per-run setup can be excluded from the
measurement.  Pausing a paused timer or resuming a running one is a
programming error in the benchmark body and raises :class:`TimerError`.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


class TimerError(RuntimeError):
    """Raised on unbalanced pause/resume calls."""


class Timer:
    """Accumulating wall-clock timer with pause/resume.

    Args:
        clock: Monotonic nanosecond clock.  Tests inject a fake one.
    """

    def __init__(self, clock: Clock = time.perf_counter_ns) -> None:
        self._clock = clock
        self._accumulated = 0
        self._started_at: int | None = None

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def reset(self, *, running: bool = True) -> None:
        """Zero the accumulated time; by default the timer runs from now."""
        self._accumulated = 0
        self._started_at = self._clock() if running else None

    def pause(self) -> None:
        if self._started_at is None:
            raise TimerError("pause() called on a timer that is already paused")
        self._accumulated += self._clock() - self._started_at
        self._started_at = None

    def resume(self) -> None:
        if self._started_at is not None:
            raise TimerError("resume() called on a timer that is already running")
        self._started_at = self._clock()

    def elapsed(self) -> int:
        """Accumulated running time in ns, excluding paused intervals."""
        if self._started_at is None:
            return self._accumulated
        return self._accumulated + (self._clock() - self._started_at)
