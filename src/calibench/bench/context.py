"""Per-run benchmark context and single-run execution.

Every benchmark body receives a :class:`BenchContext` (conventionally
named ``b``)::

    def bench_join(b):
        parts = [str(i) for i in range(100)]   # setup, excluded below
        b.reset_timer()
        for _ in range(b.n):
            b.consume(",".join(parts))

The body must perform its operation ``b.n`` times.  ``b.pause_timer()``
and ``b.resume_timer()`` exclude per-iteration setup.  Results should be
handed to ``b.consume()`` so the computation is observably used.
"""

from __future__ import annotations

import gc
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterator

from calibench.bench.record import (
    ALLOCATION_RUN_N,
    AllocationMeasurement,
    AllocationTracker,
    RunMeasurement,
)
from calibench.bench.timer import Clock, Timer

# Untimed allocation runs per sample; the smallest counters are kept.
ALLOCATION_RUNS = 3

# ---------------------------------------------------------------------------
# Sink
# ---------------------------------------------------------------------------


class Sink:
    """Harness-owned destination for benchmark results.

    Keeps the last consumed value and a count, so work whose result is
    handed to the sink is never dead.
    """

    __slots__ = ("consumed", "last", "_lock")

    def __init__(self) -> None:
        self.consumed = 0
        self.last: Any = None
        self._lock = threading.Lock()

    def consume(self, value: Any) -> None:
        with self._lock:
            self.last = value
            self.consumed += 1


# ---------------------------------------------------------------------------
# Parallel iteration sharing
# ---------------------------------------------------------------------------


class ParallelIterations:
    """Iterator shared by the workers of :meth:`BenchContext.run_parallel`.

    Workers claim iterations in batches of *grain* from a common budget of
    N, so together they perform exactly N iterations.
    """

    def __init__(self, total: int, grain: int = 1) -> None:
        self._remaining = total
        self._grain = max(grain, 1)
        self._lock = threading.Lock()

    def _claim(self) -> int:
        with self._lock:
            take = min(self._grain, self._remaining)
            self._remaining -= take
            return take

    def worker_iterations(self) -> Iterator[None]:
        while True:
            batch = self._claim()
            if not batch:
                return
            for _ in range(batch):
                yield None


# ---------------------------------------------------------------------------
# BenchContext
# ---------------------------------------------------------------------------


class BenchContext:
    """The ``b`` argument of a benchmark body."""

    def __init__(
        self,
        *,
        n: int,
        parallelism: int,
        sink: Sink,
        timer: Timer,
        allocations: AllocationTracker | None = None,
    ) -> None:
        self.n = n
        self.parallelism = parallelism
        self.sink = sink
        self._timer = timer
        self._allocations = allocations

    def consume(self, value: Any) -> None:
        """Hand a computed result to the harness-owned sink."""
        self.sink.consume(value)

    def reset_timer(self) -> None:
        """Discard time (and allocations) accumulated so far; the timer runs from now.

        Calling it while paused also resumes the timer, so a later
        ``resume_timer()`` is an unmatched resume.
        """
        if self._allocations is not None:
            self._allocations.stop()
            self._allocations.bytes_allocated = 0
            self._allocations.allocations = 0
        self._timer.reset()
        if self._allocations is not None:
            self._allocations.start()

    def pause_timer(self) -> None:
        self._timer.pause()
        if self._allocations is not None:
            self._allocations.stop()

    def resume_timer(self) -> None:
        self._timer.resume()
        if self._allocations is not None:
            self._allocations.start()

    def run_parallel(
        self,
        worker: Callable[[Iterator[None]], None],
        *,
        grain: int = 1,
    ) -> None:
        """Run *worker* on ``parallelism`` threads sharing the N iterations.

        Each worker receives an iterator and performs one operation per
        item it yields::

            def bench_cache(b):
                def worker(iterations):
                    for _ in iterations:
                        cache.get("key")
                b.run_parallel(worker)

        Exceptions raised by a worker propagate to the caller.
        """
        shared = ParallelIterations(self.n, grain)
        with ThreadPoolExecutor(max_workers=max(self.parallelism, 1)) as pool:
            futures = [
                pool.submit(worker, shared.worker_iterations())
                for _ in range(max(self.parallelism, 1))
            ]
            for future in futures:
                future.result()


# ---------------------------------------------------------------------------
# Single-run execution
# ---------------------------------------------------------------------------


def execute_run(
    body: Callable[[BenchContext], Any],
    n: int,
    *,
    parallelism: int = 1,
    sink: Sink | None = None,
    clock: Clock = time.perf_counter_ns,
) -> RunMeasurement:
    """Run *body* once with ``b.n = n`` under a fresh timer.

    The timer state is private to this run.  Exceptions raised by the
    body, including :class:`~calibench.bench.timer.TimerError`, propagate.

    Returns:
        RunMeasurement with elapsed time excluding paused intervals.
    """
    timer = Timer(clock)
    ctx = BenchContext(
        n=n,
        parallelism=parallelism,
        sink=sink if sink is not None else Sink(),
        timer=timer,
    )
    timer.reset()
    body(ctx)
    if timer.running:
        ctx.pause_timer()
    return RunMeasurement(n=n, elapsed_ns=timer.elapsed())


def measure_allocations(
    body: Callable[[BenchContext], Any],
    *,
    parallelism: int = 1,
    n: int = ALLOCATION_RUN_N,
    runs: int = ALLOCATION_RUNS,
    clock: Clock = time.perf_counter_ns,
) -> AllocationMeasurement:
    """Run *body* untimed under an :class:`AllocationTracker`.

    Each of the *runs* runs gets a fresh sink, so the consumed value stays
    alive until the counters are read.  The smallest counters over all runs
    are kept, which drops one-off allocations such as cache fills.  Cyclic
    garbage collection is paused during each run so a collection cannot
    free unrelated blocks and hide the body's own.

    Exceptions raised by the body propagate.
    """
    best: tuple[int, int] | None = None
    for _ in range(max(runs, 1)):
        timer = Timer(clock)
        tracker = AllocationTracker()
        ctx = BenchContext(
            n=n,
            parallelism=parallelism,
            sink=Sink(),
            timer=timer,
            allocations=tracker,
        )
        gc_was_enabled = gc.isenabled()
        gc.disable()
        try:
            timer.reset()
            tracker.start()
            body(ctx)
            if timer.running:
                ctx.pause_timer()
        finally:
            tracker.close()
            if gc_was_enabled:
                gc.enable()
        if best is None:
            best = (tracker.bytes_allocated, tracker.allocations)
        else:
            best = (min(best[0], tracker.bytes_allocated), min(best[1], tracker.allocations))

    assert best is not None
    return AllocationMeasurement(n=n, bytes_allocated=best[0], allocations=best[1])
