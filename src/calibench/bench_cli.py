"""CLI commands for running and comparing benchmarks.

Commands:
    calibench run       Calibrate and run benchmarks, emit sample lines
    calibench list      List the benchmarks a target defines
    calibench compare   Compare two sample files
    calibench system    Print the environment header
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import click

from calibench.bench.results import METRICS
from calibench.logging import setup_logging

log = logging.getLogger("calibench")


def _load_settings_or_fail(settings_path: Path | None) -> dict[str, Any]:
    from calibench.bench.config import load_settings

    if settings_path is None:
        return {}
    try:
        return load_settings(settings_path)
    except (OSError, ValueError) as exc:
        raise click.UsageError(str(exc)) from exc


def _load_registry_or_fail(target: str) -> Any:
    from calibench.bench.registry import load_registry

    try:
        return load_registry(target)
    except FileNotFoundError as exc:
        raise click.UsageError(str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        click.echo(f"Error: cannot load benchmarks from {target}: {exc}", err=True)
        raise SystemExit(1) from exc


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@click.command("run")
@click.argument("target")
@click.option(
    "--bench",
    "bench_pattern",
    type=str,
    default=None,
    help="Regular expression selecting benchmarks to run (default: none).",
)
@click.option(
    "--benchtime",
    type=str,
    default=None,
    help="Target time per run (e.g. 1s, 500ms) or a fixed count (e.g. 20x). Default: 1s.",
)
@click.option("--count", type=int, default=None, help="Runs per benchmark and axis value (default: 1).")
@click.option(
    "--cpu",
    type=str,
    default=None,
    help="Comma-separated parallelism values overriding each benchmark's own.",
)
@click.option("--benchmem", is_flag=True, default=False, help="Record B/op and allocs/op.")
@click.option(
    "--budget",
    type=str,
    default=None,
    help="Overall time budget (e.g. 10m); remaining runs are skipped once exceeded.",
)
@click.option(
    "--cpuprofile",
    type=click.Path(path_type=Path),
    default=None,
    help="Write a cProfile profile to this file.",
)
@click.option(
    "--memprofile",
    type=click.Path(path_type=Path),
    default=None,
    help="Write a tracemalloc snapshot to this file.",
)
@click.option(
    "--blockprofile",
    type=click.Path(path_type=Path),
    default=None,
    help="Accepted for compatibility; CPython has no block profiler.",
)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(path_type=Path),
    default=None,
    help="YAML settings file; command-line options take precedence.",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    default=None,
    help="Also write the sample file here.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show calibration attempts.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def run(  # noqa: PLR0913
    target: str,
    bench_pattern: str | None,
    benchtime: str | None,
    count: int | None,
    cpu: str | None,
    benchmem: bool,
    budget: str | None,
    cpuprofile: Path | None,
    memprofile: Path | None,
    blockprofile: Path | None,
    settings_path: Path | None,
    output: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Run the benchmarks defined in TARGET.

    TARGET is a Python file or an importable module.  Sample lines are
    written to stdout; progress and warnings go to stderr.

    \b
    Examples:
        calibench run benchmarks.py --bench=. --count=10 > old.txt
        calibench run benchmarks.py --bench='^sort' --benchtime=20x
        calibench run mypkg.benchmarks --bench=. --cpu=1,2,4 --benchmem
    """
    from calibench.bench.config import config_from_settings
    from calibench.bench.display import format_run_summary
    from calibench.bench.runner import BenchRunner

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    settings = _load_settings_or_fail(settings_path)
    cli_overrides: dict[str, Any] = {
        "bench": bench_pattern,
        "benchtime": benchtime,
        "count": count,
        "cpu": cpu,
        "benchmem": benchmem,
        "budget": budget,
        "output": output,
        "cpuprofile": cpuprofile,
        "memprofile": memprofile,
        "blockprofile": blockprofile,
    }
    try:
        config = config_from_settings(settings, cli_overrides=cli_overrides)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    registry = _load_registry_or_fail(target)

    runner = BenchRunner(config, registry, emit=click.echo)
    try:
        report = runner.run()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904

    if report.results and not quiet:
        click.echo(format_run_summary(report.results, report.skipped), err=True)

    if report.failed:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# list
# ---------------------------------------------------------------------------


@click.command("list")
@click.argument("target")
@click.option(
    "--bench",
    "bench_pattern",
    type=str,
    default=".",
    show_default=True,
    help="Regular expression filtering the listed benchmarks.",
)
def list_benchmarks(target: str, bench_pattern: str) -> None:
    """List the benchmarks defined in TARGET."""
    import re

    setup_logging(quiet=True)
    registry = _load_registry_or_fail(target)
    try:
        specs = registry.select(bench_pattern)
    except re.error as exc:
        raise click.UsageError(f"Invalid --bench pattern {bench_pattern!r}: {exc}") from exc

    if not specs:
        click.echo("No benchmarks found.")
        return
    width = max(len(spec.name) for spec in specs)
    for spec in specs:
        axis = ",".join(str(v) for v in spec.axis_values)
        click.echo(f"{spec.name:<{width}s}  axis={axis}")


# ---------------------------------------------------------------------------
# compare
# ---------------------------------------------------------------------------


@click.command("compare")
@click.argument("old", type=click.Path(path_type=Path))
@click.argument("new", type=click.Path(path_type=Path))
@click.option(
    "--metric",
    type=click.Choice(list(METRICS)),
    default=None,
    help="Metric to compare (default: time).",
)
@click.option("--alpha", type=float, default=None, help="Significance level (default: 0.05).")
@click.option(
    "--outlier-k",
    type=float,
    default=None,
    help="Reject samples more than K scaled MADs from the median (default: 3).",
)
@click.option(
    "--cv-threshold",
    type=float,
    default=None,
    help="Relative stddev above which a result is low confidence (default: 0.05).",
)
@click.option("--workers", type=int, default=None, help="Threads for per-group analysis.")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(path_type=Path),
    default=None,
    help="YAML settings file (reads its 'compare' section).",
)
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def compare(  # noqa: PLR0913
    old: Path,
    new: Path,
    metric: str | None,
    alpha: float | None,
    outlier_k: float | None,
    cv_threshold: float | None,
    workers: int | None,
    settings_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Compare two sample files, OLD (baseline) and NEW (candidate).

    \b
    Examples:
        calibench compare old.txt new.txt
        calibench compare old.txt new.txt --metric=allocs --alpha=0.01
    """
    from calibench.bench.compare import compare_samples
    from calibench.bench.config import compare_config_from_settings, validate_compare_config
    from calibench.bench.display import format_comparison_summary, format_comparison_table
    from calibench.bench.results import SampleFileError, read_sample_file
    from calibench.bench.system import environment_mismatches

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    settings = _load_settings_or_fail(settings_path)
    try:
        config = compare_config_from_settings(
            settings,
            cli_overrides={
                "metric": metric,
                "alpha": alpha,
                "outlier_k": outlier_k,
                "cv_threshold": cv_threshold,
                "workers": workers,
            },
        )
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    errors = validate_compare_config(config)
    if errors:
        raise click.UsageError("; ".join(e.message for e in errors))

    try:
        baseline = read_sample_file(old)
        candidate = read_sample_file(new)
    except SampleFileError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    for mismatch in environment_mismatches(baseline.metadata, candidate.metadata):
        log.warning("Environments differ: %s", mismatch)

    report = compare_samples(
        baseline.samples,
        candidate.samples,
        metric=config.metric,
        alpha=config.alpha,
        outlier_k=config.outlier_k,
        cv_threshold=config.cv_threshold,
        workers=config.workers,
    )

    click.echo(format_comparison_table(report))
    if report.results and not quiet:
        click.echo()
        click.echo(format_comparison_summary(report))


# ---------------------------------------------------------------------------
# system
# ---------------------------------------------------------------------------


@click.command("system")
def system() -> None:
    """Print the environment header written at the top of sample files."""
    from calibench.bench.results import format_header
    from calibench.bench.system import capture_environment

    for line in format_header(capture_environment().to_header()):
        click.echo(line)
