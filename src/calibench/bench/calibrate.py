"""Iteration-count calibration.

Chooses how many iterations N to run so that one run takes at least the
target duration, without wasting time on long early guesses.

Calibrated mode starts at N=1 and, while the measured time stays below
the target, predicts the next N from the observed per-iteration cost::

    next = max(N * target / elapsed, 2 * N)     # at least double
    next = min(next, 100 * N, MAX_ITERATIONS)   # never explode on a noisy tiny run
    next = round_to_nice(next)                  # 1, 2, 3, 5, 10, 20, 30, 50, ...

Fixed mode (``--benchtime=20x``) runs the requested N exactly once.

A global cap on the wall-clock time spent across all attempts
(``max_total_factor * target``) ends calibration of bodies that never
reach the target; the last measurement is reported with
``converged=False`` and a warning.
"""

from __future__ import annotations

import enum
import math
import time
from dataclasses import dataclass, field
from typing import Callable

from calibench.bench.record import RunMeasurement
from calibench.bench.timer import Clock
from calibench.logging import get_logger

log = get_logger("calibrate")

DEFAULT_TARGET_NS = 1_000_000_000
MAX_ITERATIONS = 1_000_000_000
DEFAULT_MAX_TOTAL_FACTOR = 100
GROWTH_FLOOR = 2
GROWTH_CEILING = 100

_NICE_STEPS = (1, 2, 3, 5)


class PlanMode(enum.Enum):
    CALIBRATED = "calibrated"
    FIXED = "fixed"


class CalibrationState(enum.Enum):
    SEEKING = "seeking"
    CONVERGED = "converged"
    FIXED = "fixed"


@dataclass
class IterationPlan:
    """Iteration count and goal for one calibration sequence."""

    n: int = 1
    target_ns: int = DEFAULT_TARGET_NS
    mode: PlanMode = PlanMode.CALIBRATED

    @classmethod
    def calibrated(cls, target_ns: int = DEFAULT_TARGET_NS) -> IterationPlan:
        return cls(n=1, target_ns=target_ns, mode=PlanMode.CALIBRATED)

    @classmethod
    def fixed(cls, n: int) -> IterationPlan:
        if n < 1:
            raise ValueError(f"Fixed iteration count must be >= 1, got {n}")
        return cls(n=n, target_ns=0, mode=PlanMode.FIXED)


@dataclass(frozen=True)
class Attempt:
    """One run performed while calibrating."""

    n: int
    elapsed_ns: int
    wall_ns: int


@dataclass
class CalibrationResult:
    """Final measurement of a calibration sequence."""

    plan: IterationPlan
    measurement: RunMeasurement
    attempts: list[Attempt] = field(default_factory=list)
    converged: bool = True


# ---------------------------------------------------------------------------
# Iteration count rounding
# ---------------------------------------------------------------------------


def round_to_nice(value: float) -> int:
    """Round *value* up to the next number in 1, 2, 3, 5, 10, 20, 30, 50, ...

    Values below 1 round up to 1.
    """
    if value <= 1:
        return 1
    decade = 10 ** int(math.floor(math.log10(value)))
    for step in _NICE_STEPS:
        candidate = step * decade
        if candidate >= value:
            return candidate
    return 10 * decade


def predict_next_n(n: int, elapsed_ns: int, target_ns: int) -> int:
    """Predict the next iteration count after a run of *n* took *elapsed_ns*."""
    scale = target_ns / max(elapsed_ns, 1)
    proposed = max(n * scale, GROWTH_FLOOR * n)
    proposed = min(proposed, GROWTH_CEILING * n, MAX_ITERATIONS)
    return min(round_to_nice(proposed), MAX_ITERATIONS)


# ---------------------------------------------------------------------------
# Calibrator
# ---------------------------------------------------------------------------


class Calibrator:
    """Drives runs of a body until the iteration plan converges.

    Args:
        plan: Fresh iteration plan; mutated during calibration.
        clock: Nanosecond clock used for the attempt cap.
        max_total_factor: Attempt cap as a multiple of the target duration.
        label: Name used in log messages.
    """

    def __init__(
        self,
        plan: IterationPlan,
        *,
        clock: Clock = time.perf_counter_ns,
        max_total_factor: float = DEFAULT_MAX_TOTAL_FACTOR,
        label: str = "benchmark",
    ) -> None:
        self.plan = plan
        self.state = (
            CalibrationState.FIXED if plan.mode is PlanMode.FIXED else CalibrationState.SEEKING
        )
        self._clock = clock
        self._max_total_factor = max_total_factor
        self._label = label

    def calibrate(self, run: Callable[[int], RunMeasurement]) -> CalibrationResult:
        """Run until converged (or capped).

        Args:
            run: Executes the body for the given N and returns the measurement.
                Exceptions propagate unchanged.
        """
        if self.plan.mode is PlanMode.FIXED:
            return self._run_fixed(run)
        return self._run_seeking(run)

    def _timed_attempt(
        self,
        run: Callable[[int], RunMeasurement],
        attempts: list[Attempt],
    ) -> RunMeasurement:
        start = self._clock()
        measurement = run(self.plan.n)
        wall = self._clock() - start
        attempts.append(Attempt(n=self.plan.n, elapsed_ns=measurement.elapsed_ns, wall_ns=wall))
        log.debug(
            "%s: N=%d took %d ns (%d ns wall)",
            self._label,
            self.plan.n,
            measurement.elapsed_ns,
            wall,
        )
        return measurement

    def _run_fixed(self, run: Callable[[int], RunMeasurement]) -> CalibrationResult:
        attempts: list[Attempt] = []
        measurement = self._timed_attempt(run, attempts)
        self.state = CalibrationState.CONVERGED
        return CalibrationResult(plan=self.plan, measurement=measurement, attempts=attempts)

    def _run_seeking(self, run: Callable[[int], RunMeasurement]) -> CalibrationResult:
        target = self.plan.target_ns
        budget = self._max_total_factor * target
        attempts: list[Attempt] = []
        spent = 0

        while True:
            measurement = self._timed_attempt(run, attempts)
            spent += attempts[-1].wall_ns

            if measurement.elapsed_ns >= target:
                self.state = CalibrationState.CONVERGED
                return CalibrationResult(
                    plan=self.plan, measurement=measurement, attempts=attempts
                )

            if self.plan.n >= MAX_ITERATIONS or spent >= budget:
                log.warning(
                    "%s did not converge: %d attempts, last N=%d ran %d ns of a %d ns target; "
                    "reporting the last measurement",
                    self._label,
                    len(attempts),
                    self.plan.n,
                    measurement.elapsed_ns,
                    target,
                )
                return CalibrationResult(
                    plan=self.plan,
                    measurement=measurement,
                    attempts=attempts,
                    converged=False,
                )

            self.plan.n = predict_next_n(self.plan.n, measurement.elapsed_ns, target)
