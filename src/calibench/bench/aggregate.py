"""Multi-run aggregation.

For one benchmark, runs ``count`` independent calibration+recording
cycles for every axis value, strictly one after another, and collects
the resulting Samples into one SampleSet per (name, axis_value).

Each cycle starts from a fresh IterationPlan; N from a previous repeat is
never reused, so repeats stay independent and environmental drift shows
up as variance instead of being hidden.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from calibench.bench.calibrate import Calibrator, CalibrationResult
from calibench.bench.config import BenchTime
from calibench.bench.context import execute_run, measure_allocations
from calibench.bench.record import AllocationMeasurement, RunMeasurement, record_sample
from calibench.bench.registry import BenchmarkSpec
from calibench.bench.results import Sample, SampleSet
from calibench.bench.timer import Clock
from calibench.logging import get_logger

log = get_logger("aggregate")

SampleCallback = Callable[[Sample, CalibrationResult], None]


@dataclass
class BenchmarkFailure:
    """A benchmark body raised during a run."""

    name: str
    axis_value: int
    repeat: int  # 1-based
    error: BaseException

    @property
    def message(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


@dataclass
class AggregateResult:
    """Everything one benchmark produced."""

    name: str
    sample_sets: dict[int, SampleSet] = field(default_factory=dict)  # by axis value
    not_converged: list[tuple[int, int]] = field(default_factory=list)  # (axis, repeat)
    failure: BenchmarkFailure | None = None
    partial: bool = False  # stopped early by the budget

    @property
    def samples(self) -> list[Sample]:
        return [s for ss in self.sample_sets.values() for s in ss]

    @property
    def failed(self) -> bool:
        return self.failure is not None


def run_benchmark(
    spec: BenchmarkSpec,
    *,
    benchtime: BenchTime,
    count: int = 1,
    track_allocations: bool = False,
    max_total_factor: float = 100,
    deadline_ns: int | None = None,
    clock: Clock = time.perf_counter_ns,
    on_sample: SampleCallback | None = None,
) -> AggregateResult:
    """Run *spec* ``count`` times for each of its axis values.

    Args:
        spec: The benchmark.  Its ``axis_values`` are swept in order.
        benchtime: Target duration or fixed N for each run.
        count: Independent repeats per axis value.
        track_allocations: Record allocation counters from a separate untimed
            run after each calibration, so the timings stay untraced.
        max_total_factor: Attempt cap passed to each Calibrator.
        deadline_ns: Clock value after which no new repeat is started.
        clock: Nanosecond clock for timers, attempt caps and the deadline.
        on_sample: Called with each Sample as soon as it is recorded.

    Returns:
        AggregateResult.  A failing body ends the benchmark with
        ``failure`` set; samples recorded before the failure are kept.
    """
    result = AggregateResult(name=spec.name)

    for axis_value in spec.axis_values:
        sample_set = result.sample_sets.setdefault(axis_value, SampleSet(spec.name, axis_value))

        for repeat in range(1, count + 1):
            if deadline_ns is not None and clock() >= deadline_ns:
                result.partial = True
                log.warning(
                    "%s-%d: budget exhausted after %d of %d runs; reporting partial results",
                    spec.name,
                    axis_value,
                    repeat - 1,
                    count,
                )
                return result

            calibrator = Calibrator(
                benchtime.new_plan(),
                clock=clock,
                max_total_factor=max_total_factor,
                label=f"{spec.name}-{axis_value}",
            )

            def run(n: int) -> RunMeasurement:
                return execute_run(
                    spec.body,
                    n,
                    parallelism=axis_value,
                    sink=spec.sink,
                    clock=clock,
                )

            allocations: AllocationMeasurement | None = None
            try:
                calibration = calibrator.calibrate(run)
                if track_allocations:
                    allocations = measure_allocations(
                        spec.body, parallelism=axis_value, clock=clock
                    )
            except Exception as exc:  # noqa: BLE001
                result.failure = BenchmarkFailure(
                    name=spec.name,
                    axis_value=axis_value,
                    repeat=repeat,
                    error=exc,
                )
                log.error(
                    "%s-%d failed on run %d: %s",
                    spec.name,
                    axis_value,
                    repeat,
                    result.failure.message,
                )
                return result

            if not calibration.converged:
                result.not_converged.append((axis_value, repeat))

            sample = record_sample(spec.name, axis_value, calibration.measurement, allocations)
            sample_set.append(sample)
            if on_sample is not None:
                on_sample(sample, calibration)

    return result
