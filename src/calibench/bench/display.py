"""Terminal display formatting for benchmark results.

Produces aligned tables for comparisons and a summary for harness runs.
Uses Unicode box-drawing characters for visual structure.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Sequence

from calibench.bench.compare import ComparisonReport, ComparisonResult
from calibench.bench.results import METRIC_ALLOCS, METRIC_BYTES, METRIC_TIME

if TYPE_CHECKING:
    from calibench.bench.aggregate import AggregateResult


# ---------------------------------------------------------------------------
# Value formatting utilities
# ---------------------------------------------------------------------------


def format_ns(ns: float, precision: int = 2) -> str:
    """Format a duration in nanoseconds with adaptive units."""
    if math.isnan(ns):
        return "N/A"
    if math.isinf(ns):
        return "inf"
    if ns < 1_000:
        return f"{ns:.{precision}f}ns"
    if ns < 1_000_000:
        return f"{ns / 1_000:.{precision}f}µs"
    if ns < 1_000_000_000:
        return f"{ns / 1_000_000:.{precision}f}ms"
    seconds = ns / 1_000_000_000
    if seconds < 60:
        return f"{seconds:.{precision}f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m{secs:.0f}s"


def format_bytes(value: float) -> str:
    """Format a per-op byte count."""
    if math.isnan(value):
        return "N/A"
    if value < 1024:
        return f"{value:.0f}B"
    if value < 1024 * 1024:
        return f"{value / 1024:.2f}KiB"
    return f"{value / (1024 * 1024):.2f}MiB"


def format_count(value: float) -> str:
    if math.isnan(value):
        return "N/A"
    return f"{value:.0f}"


def format_pct(value: float, precision: int = 2) -> str:
    """Format a percentage with sign."""
    if math.isnan(value):
        return "~"
    if math.isinf(value):
        return "+inf%" if value > 0 else "-inf%"
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.{precision}f}%"


def _format_p(p_value: float) -> str:
    if math.isnan(p_value):
        return "N/A"
    if p_value < 0.001:
        return "p<0.001"
    return f"p={p_value:.3f}"


_METRIC_FORMATTERS = {
    METRIC_TIME: format_ns,
    METRIC_BYTES: format_bytes,
    METRIC_ALLOCS: format_count,
}

_METRIC_HEADERS = {
    METRIC_TIME: "time/op",
    METRIC_BYTES: "B/op",
    METRIC_ALLOCS: "allocs/op",
}


# ---------------------------------------------------------------------------
# Comparison table
# ---------------------------------------------------------------------------


def _format_mean(result: ComparisonResult, side: str) -> str:
    fmt = _METRIC_FORMATTERS[result.metric]
    mean = result.mean_a if side == "a" else result.mean_b
    rsd = result.rel_stddev_a if side == "a" else result.rel_stddev_b
    if math.isnan(mean):
        return "N/A"
    if math.isnan(rsd) or math.isinf(rsd):
        return fmt(mean)
    return f"{fmt(mean)} ±{rsd * 100:.0f}%"


def _format_counts(accepted: int, rejected: int) -> str:
    return f"{accepted}/{accepted + rejected}"


def _format_delta_cell(result: ComparisonResult, alpha: float) -> str:
    if result.insufficient_data:
        return "insufficient data"
    if not result.significant(alpha):
        return "~"
    marker = " ?" if result.low_confidence else ""
    return f"{format_pct(result.delta_percent)}{marker}"


def format_comparison_table(report: ComparisonReport) -> str:
    """Format a ComparisonReport as an aligned table.

    Columns: group name, baseline mean, candidate mean, delta and p-value,
    then accepted/total sample counts for each side.  A delta of ``~``
    means the difference is not significant at the report's alpha; a
    trailing ``?`` marks a low-confidence result.

    Returns:
        Formatted string for terminal output.
    """
    if not report.results and not report.only_in_a and not report.only_in_b:
        return "No benchmarks to compare."

    unit = _METRIC_HEADERS[report.metric]
    rows: list[tuple[str, ...]] = [
        ("name", f"old {unit}", f"new {unit}", "delta", "p-value", "old n", "new n")
    ]
    for r in report.results:
        rows.append(
            (
                r.label,
                _format_mean(r, "a"),
                _format_mean(r, "b"),
                _format_delta_cell(r, report.alpha),
                _format_p(r.p_value),
                _format_counts(r.accepted_a, r.rejected_a),
                _format_counts(r.accepted_b, r.rejected_b),
            )
        )

    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    lines: list[str] = []
    for idx, row in enumerate(rows):
        cells = [row[0].ljust(widths[0])]
        cells.extend(cell.rjust(width) for cell, width in zip(row[1:], widths[1:]))
        lines.append("  ".join(cells).rstrip())
        if idx == 0:
            lines.append("─" * len(lines[0]))

    if report.results:
        geomean = report.geomean_delta_percent
        if not math.isnan(geomean):
            lines.append(f"{'geomean'.ljust(widths[0])}  {format_pct(geomean)}")

    if report.only_in_a:
        lines.append("")
        lines.append("Only in old:")
        for name, axis in report.only_in_a:
            lines.append(f"  {name}-{axis}")
    if report.only_in_b:
        lines.append("")
        lines.append("Only in new:")
        for name, axis in report.only_in_b:
            lines.append(f"  {name}-{axis}")

    notes: list[str] = []
    if report.low_confidence_count:
        notes.append(
            f"? {report.low_confidence_count} result(s) with relative stddev "
            "above threshold; rerun with a higher --count or on a quieter machine."
        )
    if report.insufficient_count:
        notes.append(
            f"{report.insufficient_count} group(s) had fewer than 2 accepted samples."
        )
    if notes:
        lines.append("")
        lines.extend(notes)

    return "\n".join(lines)


def format_comparison_summary(report: ComparisonReport) -> str:
    """Format aggregate counts for a ComparisonReport."""
    lines = [
        "Summary",
        "─" * 7,
        f"  Groups compared:           {len(report.results)}",
        f"  Statistically significant: {report.significant_count} (alpha={report.alpha:g})",
        f"  Lower in new:              {report.faster_count}",
        f"  Higher in new:             {report.slower_count}",
    ]
    if report.low_confidence_count:
        lines.append(f"  Low confidence:            {report.low_confidence_count}")
    if report.insufficient_count:
        lines.append(f"  Insufficient data:         {report.insufficient_count}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Run summary
# ---------------------------------------------------------------------------


def format_run_summary(
    results: list[AggregateResult],
    skipped: Sequence[str] = (),
) -> str:
    """Format the end-of-run summary.

    *skipped* names benchmarks never started because the budget ran out.
    """
    total_samples = sum(len(r.samples) for r in results)
    failed = [r for r in results if r.failed]
    partial = [r for r in results if r.partial]
    not_converged = [r for r in results if r.not_converged]

    lines = [
        "Run Summary",
        "─" * 11,
        f"  Benchmarks run:  {len(results)}",
        f"  Samples:         {total_samples}",
    ]
    if failed:
        lines.append(f"  Failed:          {len(failed)}")
        for r in failed:
            assert r.failure is not None
            lines.append(
                f"    {r.failure.name}-{r.failure.axis_value} "
                f"(run {r.failure.repeat}): {r.failure.message}"
            )
    if not_converged:
        lines.append(f"  Did not converge: {len(not_converged)}")
        for r in not_converged:
            axes = sorted({axis for axis, _repeat in r.not_converged})
            runs = len(r.not_converged)
            lines.append(
                f"    {r.name} (axis {', '.join(str(a) for a in axes)}; {runs} run(s))"
            )
    if partial:
        lines.append(f"  Partial (budget): {len(partial)}")
        for r in partial:
            lines.append(f"    {r.name}")
    if skipped:
        lines.append(f"  Not run (budget): {len(skipped)}")
        for name in skipped:
            lines.append(f"    {name}")
    status = "FAIL" if failed else "ok"
    lines.append(f"  Status:          {status}")
    return "\n".join(lines)
