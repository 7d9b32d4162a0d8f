"""Benchmark comparison analysis.

Compares a baseline sample collection (A) with a candidate (B) group by
group, where a group is one (name, axis_value) key.  For every group
present on both sides:

1. Trim outliers on each side (MAD rule, see :func:`trim_outliers`).
2. Mean and relative standard deviation of the accepted values.
3. Mann-Whitney U test on the accepted values.
4. ``delta_percent = (mean_b - mean_a) / mean_a * 100``.
5. Flag insufficient data (< 2 accepted on a side) and low confidence
   (relative stddev above the threshold on a side).
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable

from calibench.bench.results import METRIC_TIME, Sample, SampleSet, group_samples
from calibench.bench.stats import describe, mann_whitney_u, trim_outliers

log = logging.getLogger("calibench")

MIN_ACCEPTED = 2


# ---------------------------------------------------------------------------
# Per-group comparison result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComparisonResult:
    """Comparison of one (name, axis_value) group between A and B."""

    group_key: tuple[str, int]
    mean_a: float
    mean_b: float
    rel_stddev_a: float
    rel_stddev_b: float
    delta_percent: float
    p_value: float
    accepted_a: int
    accepted_b: int
    rejected_a: int
    rejected_b: int
    metric: str = METRIC_TIME
    insufficient_data: bool = False
    low_confidence: bool = False
    test_method: str = "none"

    @property
    def name(self) -> str:
        return self.group_key[0]

    @property
    def axis_value(self) -> int:
        return self.group_key[1]

    @property
    def label(self) -> str:
        return f"{self.group_key[0]}-{self.group_key[1]}"

    def significant(self, alpha: float = 0.05) -> bool:
        """True if the difference is significant at *alpha* (ignores confidence flags)."""
        return not self.insufficient_data and self.p_value < alpha

    def significant_and_reliable(self, alpha: float = 0.05) -> bool:
        return self.significant(alpha) and not self.low_confidence


def _delta_percent(mean_a: float, mean_b: float) -> float:
    if mean_a > 0:
        return (mean_b - mean_a) / mean_a * 100
    if mean_b > mean_a:
        return float("inf")
    return 0.0


def compare_sample_sets(
    set_a: SampleSet,
    set_b: SampleSet,
    *,
    metric: str = METRIC_TIME,
    outlier_k: float = 3.0,
    cv_threshold: float = 0.05,
) -> ComparisonResult:
    """Compare two SampleSets of the same key.

    Args:
        set_a: Baseline samples.
        set_b: Candidate samples.
        metric: ``time``, ``bytes`` or ``allocs``.
        outlier_k: MAD multiplier for outlier rejection.
        cv_threshold: Relative stddev above which a side is unreliable.

    Raises:
        ValueError: If the sets have different keys.
    """
    if set_a.key != set_b.key:
        raise ValueError(f"Cannot compare {set_a.key} with {set_b.key}")

    trim_a = trim_outliers(set_a.values(metric), k=outlier_k)
    trim_b = trim_outliers(set_b.values(metric), k=outlier_k)
    stats_a = describe(trim_a.accepted)
    stats_b = describe(trim_b.accepted)

    common = {
        "group_key": set_a.key,
        "mean_a": stats_a.mean,
        "mean_b": stats_b.mean,
        "rel_stddev_a": stats_a.cv,
        "rel_stddev_b": stats_b.cv,
        "accepted_a": len(trim_a.accepted),
        "accepted_b": len(trim_b.accepted),
        "rejected_a": len(trim_a.rejected),
        "rejected_b": len(trim_b.rejected),
        "metric": metric,
    }

    if len(trim_a.accepted) < MIN_ACCEPTED or len(trim_b.accepted) < MIN_ACCEPTED:
        return ComparisonResult(
            delta_percent=float("nan"),
            p_value=float("nan"),
            insufficient_data=True,
            **common,
        )

    test = mann_whitney_u(trim_a.accepted, trim_b.accepted)
    low_confidence = stats_a.cv > cv_threshold or stats_b.cv > cv_threshold

    return ComparisonResult(
        delta_percent=_delta_percent(stats_a.mean, stats_b.mean),
        p_value=test.p_value,
        low_confidence=low_confidence,
        test_method=test.method,
        **common,
    )


# ---------------------------------------------------------------------------
# Aggregate comparison
# ---------------------------------------------------------------------------


@dataclass
class ComparisonReport:
    """Complete comparison of a baseline and a candidate collection."""

    metric: str = METRIC_TIME
    alpha: float = 0.05
    results: list[ComparisonResult] = field(default_factory=list)
    only_in_a: list[tuple[str, int]] = field(default_factory=list)
    only_in_b: list[tuple[str, int]] = field(default_factory=list)

    @property
    def comparable(self) -> list[ComparisonResult]:
        return [r for r in self.results if not r.insufficient_data]

    @property
    def insufficient_count(self) -> int:
        return sum(1 for r in self.results if r.insufficient_data)

    @property
    def low_confidence_count(self) -> int:
        return sum(1 for r in self.results if r.low_confidence)

    @property
    def significant_count(self) -> int:
        return sum(1 for r in self.results if r.significant(self.alpha))

    @property
    def faster_count(self) -> int:
        """Groups significantly lower in B (faster, or fewer allocations)."""
        return sum(
            1 for r in self.results if r.significant(self.alpha) and r.delta_percent < 0
        )

    @property
    def slower_count(self) -> int:
        return sum(
            1 for r in self.results if r.significant(self.alpha) and r.delta_percent > 0
        )

    @property
    def geomean_delta_percent(self) -> float:
        """Geometric mean of mean_b/mean_a over comparable groups, as a delta %.

        Groups with a non-positive mean on either side are left out.
        NaN when no group qualifies.
        """
        logs = [
            math.log(r.mean_b / r.mean_a)
            for r in self.comparable
            if r.mean_a > 0 and r.mean_b > 0
        ]
        if not logs:
            return float("nan")
        return (math.exp(sum(logs) / len(logs)) - 1) * 100


def compare_samples(
    baseline: Iterable[Sample],
    candidate: Iterable[Sample],
    *,
    metric: str = METRIC_TIME,
    alpha: float = 0.05,
    outlier_k: float = 3.0,
    cv_threshold: float = 0.05,
    workers: int = 1,
) -> ComparisonReport:
    """Compare two sample collections group by group.

    Groups are matched on (name, axis_value).  Keys present on only one
    side are listed in ``only_in_a`` / ``only_in_b`` and not compared.
    Results follow the baseline's group order.

    Args:
        baseline: Samples of the baseline (A).
        candidate: Samples of the candidate (B).
        metric: ``time``, ``bytes`` or ``allocs``.
        alpha: Significance threshold used by the report's counts.
        outlier_k: MAD multiplier for outlier rejection.
        cv_threshold: Relative stddev above which a group is low confidence.
        workers: Compute groups on this many threads.

    Returns:
        ComparisonReport.
    """
    groups_a = group_samples(baseline)
    groups_b = group_samples(candidate)

    report = ComparisonReport(metric=metric, alpha=alpha)
    report.only_in_a = [key for key in groups_a if key not in groups_b]
    report.only_in_b = [key for key in groups_b if key not in groups_a]
    shared = [key for key in groups_a if key in groups_b]

    def compare_key(key: tuple[str, int]) -> ComparisonResult:
        return compare_sample_sets(
            groups_a[key],
            groups_b[key],
            metric=metric,
            outlier_k=outlier_k,
            cv_threshold=cv_threshold,
        )

    if workers > 1 and len(shared) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            report.results = list(pool.map(compare_key, shared))
    else:
        report.results = [compare_key(key) for key in shared]

    for key in report.only_in_a:
        log.warning("%s-%d is only in the baseline; not compared", *key)
    for key in report.only_in_b:
        log.warning("%s-%d is only in the candidate; not compared", *key)
    for r in report.results:
        if r.insufficient_data:
            log.warning(
                "%s: insufficient data (%d vs %d accepted samples, need %d)",
                r.label,
                r.accepted_a,
                r.accepted_b,
                MIN_ACCEPTED,
            )
        elif r.low_confidence:
            log.warning(
                "%s: high variance (%.1f%% / %.1f%% relative stddev); result is low confidence",
                r.label,
                r.rel_stddev_a * 100,
                r.rel_stddev_b * 100,
            )

    return report
