"""Benchmark execution engine.

Orchestrates one harness invocation:
1. Configuration validation
2. Benchmark selection (``--bench`` regex, ``--cpu`` axis override)
3. Environment capture for the sample-file header
4. Calibrated, repeated execution of every selected benchmark
   (strictly sequential) inside the profiler session
5. Streaming sample lines as they are recorded
6. Writing the sample file

A benchmark whose body raises is recorded as a failure; the remaining
benchmarks still run.
"""

from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from calibench.bench.aggregate import AggregateResult, BenchmarkFailure, run_benchmark
from calibench.bench.calibrate import CalibrationResult
from calibench.bench.config import HarnessConfig, validate_config
from calibench.bench.profiling import ProfilerSession
from calibench.bench.registry import BenchmarkSpec, Registry
from calibench.bench.results import Sample, format_header, write_sample_file
from calibench.bench.system import EnvironmentInfo, capture_environment
from calibench.bench.timer import Clock

log = logging.getLogger("calibench")

LineCallback = Callable[[str], None]


def _print_line(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


@dataclass
class RunReport:
    """Outcome of one harness invocation."""

    results: list[AggregateResult] = field(default_factory=list)
    environment: EnvironmentInfo | None = None
    warnings: list[str] = field(default_factory=list)
    output: Path | None = None
    skipped: list[str] = field(default_factory=list)  # not started, budget exhausted

    @property
    def samples(self) -> list[Sample]:
        return [s for r in self.results for s in r.samples]

    @property
    def failures(self) -> list[BenchmarkFailure]:
        return [r.failure for r in self.results if r.failure is not None]

    @property
    def failed(self) -> bool:
        return bool(self.failures)


class BenchRunner:
    """Executes the benchmarks of a Registry according to a HarnessConfig.

    Usage::

        registry = load_registry("benchmarks.py")
        runner = BenchRunner(config, registry, emit=click.echo)
        report = runner.run()
    """

    def __init__(
        self,
        config: HarnessConfig,
        registry: Registry,
        *,
        emit: LineCallback | None = None,
        clock: Clock = time.perf_counter_ns,
        environment: EnvironmentInfo | None = None,
    ) -> None:
        self.config = config
        self.registry = registry
        self.emit: LineCallback = emit or _print_line
        self.clock = clock
        self._environment = environment

    def select(self) -> list[BenchmarkSpec]:
        """The benchmarks this run will execute, with ``--cpu`` applied."""
        specs = self.registry.select(self.config.bench_pattern)
        if self.config.cpu:
            specs = [spec.with_axis(self.config.cpu) for spec in specs]
        return specs

    def run(self) -> RunReport:
        """Execute every selected benchmark.

        Returns:
            RunReport.

        Raises:
            ValueError: If the configuration is invalid.
        """
        report = RunReport(output=self.config.output)

        # Phase 1: Validate configuration.
        errors = validate_config(self.config)
        fatal = [e for e in errors if e.severity == "error"]
        for w in (e for e in errors if e.severity == "warning"):
            log.warning("Config warning: %s: %s", w.field, w.message)
            report.warnings.append(w.message)
        if fatal:
            messages = [f"  {e.field}: {e.message}" for e in fatal]
            raise ValueError("Invalid harness configuration:\n" + "\n".join(messages))

        # Phase 2: Selection.
        specs = self.select()
        if self.config.bench_pattern is None:
            log.info("No --bench pattern given; no benchmarks run")
        elif not specs:
            log.warning("No benchmarks match %r", self.config.bench_pattern)
            report.warnings.append(f"no benchmarks match {self.config.bench_pattern!r}")

        # Phase 3: Environment header.
        environment = self._environment or capture_environment()
        report.environment = environment
        header = environment.to_header()
        if specs:
            for line in format_header(header):
                self.emit(line)

        # Phase 4: Execution.
        deadline_ns = None
        if self.config.budget_ns is not None:
            deadline_ns = self.clock() + self.config.budget_ns

        log.debug(
            "Running %d benchmarks (benchtime=%s, count=%d)",
            len(specs),
            self.config.benchtime,
            self.config.count,
        )
        with ProfilerSession(
            cpuprofile=self.config.cpuprofile,
            memprofile=self.config.memprofile,
            blockprofile=self.config.blockprofile,
        ):
            for index, spec in enumerate(specs):
                if deadline_ns is not None and self.clock() >= deadline_ns:
                    skipped = [s.name for s in specs[index:]]
                    log.warning(
                        "Budget exhausted; %d benchmark(s) not run: %s",
                        len(skipped),
                        ", ".join(skipped),
                    )
                    report.warnings.append(
                        f"budget exhausted; {len(skipped)} benchmark(s) not run"
                    )
                    report.skipped = skipped
                    break
                result = run_benchmark(
                    spec,
                    benchtime=self.config.benchtime,
                    count=self.config.count,
                    track_allocations=self.config.benchmem,
                    max_total_factor=self.config.max_total_factor,
                    deadline_ns=deadline_ns,
                    clock=self.clock,
                    on_sample=self._on_sample,
                )
                report.results.append(result)
                self._note(result, report)

        # Phase 5: Output file.
        if self.config.output is not None and specs:
            write_sample_file(self.config.output, report.samples, metadata=header)

        return report

    def _on_sample(self, sample: Sample, calibration: CalibrationResult) -> None:
        self.emit(sample.to_line())
        log.debug(
            "%s-%d: N=%d after %d attempt(s)%s",
            sample.name,
            sample.axis_value,
            sample.n,
            len(calibration.attempts),
            "" if calibration.converged else " (did not converge)",
        )

    @staticmethod
    def _note(result: AggregateResult, report: RunReport) -> None:
        if result.failure is not None:
            report.warnings.append(
                f"{result.name}-{result.failure.axis_value} failed: {result.failure.message}"
            )
        if result.not_converged:
            report.warnings.append(
                f"{result.name}: {len(result.not_converged)} run(s) did not converge"
            )
        if result.partial:
            report.warnings.append(f"{result.name}: partial results (budget exhausted)")
