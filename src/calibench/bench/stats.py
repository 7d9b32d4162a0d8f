"""Statistical functions for benchmark comparison.

Provides summary statistics, MAD-based outlier trimming and the
Mann-Whitney U rank-sum test, all in pure Python.

Benchmark timings are usually skewed (a hard floor, a long tail of
interference), so the comparison relies on a rank test rather than on
a test that assumes normally distributed samples.

References:
    Mann-Whitney U: Mann, H. B. & Whitney, D. R. (1947). "On a test of
        whether one of two random variables is stochastically larger
        than the other." Annals of Mathematical Statistics 18(1): 50-60.
    MAD: Leys, C. et al. (2013). "Detecting outliers: Do not use
        standard deviation around the mean, use absolute deviation
        around the median." J. Experimental Social Psychology 49(4).
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from functools import lru_cache
from typing import Sequence

# Scale factors that make the estimators consistent with the standard
# deviation of a normal distribution.
MAD_SCALE = 1.4826
MEAN_AD_SCALE = 1.2533

# Largest combined sample size for which the exact U distribution is used.
EXACT_MAX_TOTAL = 40


# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------


@dataclass
class DescriptiveStats:
    """Summary statistics for a sample."""

    n: int
    mean: float
    median: float
    stdev: float
    min: float
    max: float
    cv: float  # coefficient of variation (stdev/mean), a.k.a. relative stddev


def describe(values: Sequence[float]) -> DescriptiveStats:
    """Compute descriptive statistics for a sample.

    Args:
        values: A sequence of numeric values.

    Returns:
        DescriptiveStats.  With no values every field is NaN; with one
        value stdev and CV are 0.0.
    """
    if not values:
        nan = float("nan")
        return DescriptiveStats(n=0, mean=nan, median=nan, stdev=nan, min=nan, max=nan, cv=nan)

    sorted_v = sorted(values)
    n = len(sorted_v)
    mean = statistics.fmean(sorted_v)
    median = statistics.median(sorted_v)

    if n >= 2:
        stdev = statistics.stdev(sorted_v)
        if mean != 0:
            cv = stdev / mean
        else:
            cv = 0.0 if stdev == 0 else float("inf")
    else:
        stdev = 0.0
        cv = 0.0

    return DescriptiveStats(
        n=n,
        mean=mean,
        median=median,
        stdev=stdev,
        min=sorted_v[0],
        max=sorted_v[-1],
        cv=cv,
    )


# ---------------------------------------------------------------------------
# Outlier trimming
# ---------------------------------------------------------------------------


@dataclass
class TrimResult:
    """Values split into accepted and rejected, each in ascending order."""

    accepted: list[float]
    rejected: list[float]
    center: float  # median of all values
    spread: float  # scaled MAD (or mean-AD fallback) used for the cut


def trim_outliers(values: Sequence[float], *, k: float = 3.0) -> TrimResult:
    """Reject values more than *k* robust standard deviations from the median.

    The spread is the MAD scaled by 1.4826.  When more than half of the
    values are identical the MAD is zero; the mean absolute deviation from
    the median (scaled by 1.2533) is used instead.  If that is zero too,
    all values are identical and nothing is rejected.  Fewer than 3 values
    are never trimmed.

    Args:
        values: The measurements.
        k: Rejection threshold in robust standard deviations.
    """
    sorted_v = sorted(values)
    if len(sorted_v) < 3:
        center = statistics.median(sorted_v) if sorted_v else float("nan")
        return TrimResult(accepted=sorted_v, rejected=[], center=center, spread=0.0)

    center = statistics.median(sorted_v)
    deviations = [abs(v - center) for v in sorted_v]
    spread = statistics.median(deviations) * MAD_SCALE
    if spread == 0:
        spread = statistics.fmean(deviations) * MEAN_AD_SCALE
    if spread == 0:
        return TrimResult(accepted=sorted_v, rejected=[], center=center, spread=0.0)

    limit = k * spread
    accepted = [v for v, d in zip(sorted_v, deviations) if d <= limit]
    rejected = [v for v, d in zip(sorted_v, deviations) if d > limit]
    return TrimResult(accepted=accepted, rejected=rejected, center=center, spread=spread)


# ---------------------------------------------------------------------------
# Mann-Whitney U test
# ---------------------------------------------------------------------------


@dataclass
class MannWhitneyResult:
    """Result of a two-sided Mann-Whitney U test."""

    u_statistic: float  # U of the first sample
    p_value: float
    method: str  # "exact", "normal", or "none"

    def significant(self, alpha: float = 0.05) -> bool:
        return not math.isnan(self.p_value) and self.p_value < alpha


def _rank(values: Sequence[float]) -> tuple[list[float], list[int]]:
    """Average ranks (1-based) of *values* and the sizes of tie groups."""
    order = sorted(range(len(values)), key=lambda i: values[i])
    ranks = [0.0] * len(values)
    ties: list[int] = []
    i = 0
    while i < len(order):
        j = i
        while j + 1 < len(order) and values[order[j + 1]] == values[order[i]]:
            j += 1
        avg = (i + j) / 2 + 1
        for idx in order[i : j + 1]:
            ranks[idx] = avg
        if j > i:
            ties.append(j - i + 1)
        i = j + 1
    return ranks, ties


@lru_cache(maxsize=None)
def _u_counts(m: int, n: int) -> tuple[int, ...]:
    """Number of arrangements giving each U in 0..m*n for sizes (m, n).

    Uses the recurrence c(m, n, u) = c(m-1, n, u-n) + c(m, n-1, u).
    """
    if m == 0 or n == 0:
        return (1,)
    size = m * n + 1
    counts = [0] * size
    for u, c in enumerate(_u_counts(m - 1, n)):
        counts[u + n] += c
    for u, c in enumerate(_u_counts(m, n - 1)):
        counts[u] += c
    return tuple(counts)


def _exact_p(u_min: float, m: int, n: int) -> float:
    counts = _u_counts(m, n)
    total = math.comb(m + n, m)
    tail = sum(counts[: int(math.floor(u_min)) + 1])
    return min(1.0, 2.0 * tail / total)


def mann_whitney_u(
    sample_a: Sequence[float],
    sample_b: Sequence[float],
) -> MannWhitneyResult:
    """Two-sided Mann-Whitney U test for two independent samples.

    Uses the exact distribution of U when there are no ties and the
    combined size is at most ``EXACT_MAX_TOTAL``; otherwise the normal
    approximation with tie and continuity corrections.  The p-value does
    not depend on which sample is passed first.

    Returns:
        MannWhitneyResult; with an empty sample p_value is NaN.
    """
    na, nb = len(sample_a), len(sample_b)
    if na == 0 or nb == 0:
        return MannWhitneyResult(u_statistic=float("nan"), p_value=float("nan"), method="none")

    ranks, ties = _rank(list(sample_a) + list(sample_b))
    rank_sum_a = sum(ranks[:na])
    u_a = rank_sum_a - na * (na + 1) / 2
    u_b = na * nb - u_a
    u_min = min(u_a, u_b)

    if not ties and na + nb <= EXACT_MAX_TOTAL:
        return MannWhitneyResult(u_statistic=u_a, p_value=_exact_p(u_min, na, nb), method="exact")

    total = na + nb
    tie_term = sum(t**3 - t for t in ties) / (total * (total - 1))
    variance = na * nb / 12 * ((total + 1) - tie_term)
    if variance <= 0:
        # Every value identical: no evidence of a difference.
        return MannWhitneyResult(u_statistic=u_a, p_value=1.0, method="normal")

    mean_u = na * nb / 2
    z = max(abs(u_a - mean_u) - 0.5, 0.0) / math.sqrt(variance)
    p = math.erfc(z / math.sqrt(2))
    return MannWhitneyResult(u_statistic=u_a, p_value=min(max(p, 0.0), 1.0), method="normal")
