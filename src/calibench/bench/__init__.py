"""Benchmarking subsystem for calibench.

Provides the measurement harness (timer control, iteration calibration,
sample recording, multi-run aggregation) and the statistical comparator
that decides whether two sets of samples differ.
"""

from calibench.bench.context import BenchContext, Sink
from calibench.bench.registry import BenchmarkSpec, Registry, benchmark

__all__ = ["BenchContext", "BenchmarkSpec", "Registry", "Sink", "benchmark"]
