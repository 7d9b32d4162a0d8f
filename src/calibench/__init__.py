"""calibench: calibrated micro-benchmarks and statistical comparison of their results."""

__version__ = "0.1.0"

from calibench.bench.context import BenchContext  # noqa: E402
from calibench.bench.registry import benchmark  # noqa: E402

__all__ = ["BenchContext", "__version__", "benchmark"]
