"""Measurement recording: raw run counters → normalized Sample.

A timed run produces a :class:`RunMeasurement` (total elapsed time and
iteration count).  With ``--benchmem`` a separate, untimed run produces an
:class:`AllocationMeasurement`, so tracing overhead never reaches the
timings.  :func:`record_sample` divides each by its own N to get the
per-operation figures stored in a :class:`~calibench.bench.results.Sample`.

Allocation counters come from :class:`AllocationTracker`.  CPython keeps
no cumulative allocation counters, and neither a peak nor a net figure
divides by N: a body that frees what it allocates has the same peak at
N=10 as at N=1000.  The allocation run therefore uses a fixed N of
:data:`ALLOCATION_RUN_N` with a fresh sink, so the value the body hands
to ``b.consume()`` stays alive and is counted.  ``bytes`` is the growth of
``tracemalloc``'s peak traced memory while the timer runs (the largest
working set of one operation) and ``allocs`` is the net growth of
``sys.getallocatedblocks()`` (pymalloc blocks still alive after it).
Both are lower bounds of what one operation allocates.
"""

from __future__ import annotations

import logging
import sys
import tracemalloc
from dataclasses import dataclass

from calibench.bench.results import Sample

log = logging.getLogger("calibench")

# Iterations per allocation run; peak and net counters do not scale with N.
ALLOCATION_RUN_N = 1


# ---------------------------------------------------------------------------
# Measurements
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RunMeasurement:
    """Raw counters from one completed timed run of N iterations."""

    n: int
    elapsed_ns: int


@dataclass(frozen=True)
class AllocationMeasurement:
    """Allocation counters from one untimed run of N iterations."""

    n: int
    bytes_allocated: int
    allocations: int


# ---------------------------------------------------------------------------
# Allocation tracking
# ---------------------------------------------------------------------------


class AllocationTracker:
    """Accumulate allocation counters across timer-running intervals.

    ``start()``/``stop()`` bracket each interval in which the benchmark
    timer runs, mirroring resume/pause, so setup done while the timer is
    paused is not counted.
    """

    def __init__(self) -> None:
        self.bytes_allocated = 0
        self.allocations = 0
        self._owns_tracing = False
        self._interval_start: tuple[int, int] | None = None

    def start(self) -> None:
        if not tracemalloc.is_tracing():
            tracemalloc.start()
            self._owns_tracing = True
        tracemalloc.reset_peak()
        current, _peak = tracemalloc.get_traced_memory()
        self._interval_start = (current, sys.getallocatedblocks())

    def stop(self) -> None:
        if self._interval_start is None:
            return
        start_bytes, start_blocks = self._interval_start
        _current, peak = tracemalloc.get_traced_memory()
        self.bytes_allocated += max(peak - start_bytes, 0)
        self.allocations += max(sys.getallocatedblocks() - start_blocks, 0)
        self._interval_start = None

    def close(self) -> None:
        """Stop any open interval and release tracemalloc if we started it."""
        self.stop()
        if self._owns_tracing:
            tracemalloc.stop()
            self._owns_tracing = False


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------


def record_sample(
    name: str,
    axis_value: int,
    measurement: RunMeasurement,
    allocations: AllocationMeasurement | None = None,
) -> Sample:
    """Normalize one completed run into a per-operation Sample.

    Args:
        name: Benchmark name.
        axis_value: The axis value (parallelism level) of the run.
        measurement: Counters from the timed run that reached convergence.
        allocations: Counters from the untimed allocation run, if any.

    Returns:
        A new Sample.  Allocation figures are ``None`` without *allocations*.
    """
    if measurement.n < 1:
        raise ValueError(f"Run of {name} reported N={measurement.n}; N must be >= 1")

    bytes_per_op: int | None = None
    allocs_per_op: int | None = None
    if allocations is not None:
        if allocations.n < 1:
            raise ValueError(f"Allocation run of {name} reported N={allocations.n}")
        bytes_per_op = allocations.bytes_allocated // allocations.n
        allocs_per_op = allocations.allocations // allocations.n

    sample = Sample(
        name=name,
        axis_value=axis_value,
        n=measurement.n,
        elapsed_ns=measurement.elapsed_ns,
        bytes_per_op=bytes_per_op,
        allocs_per_op=allocs_per_op,
    )
    log.debug(
        "Recorded %s-%d: N=%d, %.1f ns/op",
        name,
        axis_value,
        sample.n,
        sample.ns_per_op,
    )
    return sample
