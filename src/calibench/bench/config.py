"""Harness and comparator configuration.

Handles:
- Parsing durations (``1s``, ``500ms``, ``1m30s``) and ``--benchtime``
  values (a duration, or ``Nx`` for a fixed iteration count).
- Loading settings from a YAML file.
- Merging CLI options over settings-file values.
- Validating the final configuration before execution.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from calibench.bench.calibrate import DEFAULT_MAX_TOTAL_FACTOR, DEFAULT_TARGET_NS, IterationPlan
from calibench.bench.results import METRIC_TIME, METRICS

log = logging.getLogger("calibench")

_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_FIXED_RE = re.compile(r"^(\d+)x$")


# ---------------------------------------------------------------------------
# Durations and benchtime
# ---------------------------------------------------------------------------


def parse_duration(text: str) -> int:
    """Parse a duration such as ``10s``, ``250ms`` or ``1m30s`` into ns.

    Raises:
        ValueError: If *text* is not a positive duration.
    """
    text = text.strip()
    if not text:
        raise ValueError("empty duration")
    pos = 0
    total = 0.0
    for m in _DURATION_PART_RE.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_NS[m.group(2)]
        pos = m.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {text!r} (expected e.g. 1s, 500ms, 1m30s)")
    ns = round(total)
    if ns <= 0:
        raise ValueError(f"duration must be positive, got {text!r}")
    return ns


@dataclass(frozen=True)
class BenchTime:
    """Either a target duration or a fixed iteration count."""

    target_ns: int = DEFAULT_TARGET_NS
    fixed_n: int | None = None

    @property
    def is_fixed(self) -> bool:
        return self.fixed_n is not None

    def new_plan(self) -> IterationPlan:
        """A fresh IterationPlan; every run starts from one of these."""
        if self.fixed_n is not None:
            return IterationPlan.fixed(self.fixed_n)
        return IterationPlan.calibrated(self.target_ns)

    def __str__(self) -> str:
        if self.fixed_n is not None:
            return f"{self.fixed_n}x"
        return f"{self.target_ns / 1e9:g}s"


def parse_benchtime(text: str) -> BenchTime:
    """Parse ``--benchtime``: ``20x`` is a fixed count, anything else a duration."""
    text = text.strip()
    m = _FIXED_RE.match(text)
    if m:
        n = int(m.group(1))
        if n < 1:
            raise ValueError(f"fixed iteration count must be >= 1, got {text!r}")
        return BenchTime(fixed_n=n)
    return BenchTime(target_ns=parse_duration(text))


def parse_int_list(text: str) -> list[int]:
    """Parse a comma-separated list of positive integers (``--cpu=1,2,4``)."""
    values: list[int] = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = int(part)
        except ValueError:
            raise ValueError(f"invalid integer {part!r} in {text!r}") from None
        if value < 1:
            raise ValueError(f"values must be >= 1, got {value}")
        values.append(value)
    if not values:
        raise ValueError(f"no values in {text!r}")
    return values


# ---------------------------------------------------------------------------
# Configuration records
# ---------------------------------------------------------------------------


@dataclass
class HarnessConfig:
    """Resolved configuration for one harness invocation."""

    # Selection
    bench_pattern: str | None = None  # None runs nothing

    # Iteration control
    benchtime: BenchTime = field(default_factory=BenchTime)
    count: int = 1
    cpu: list[int] | None = None  # overrides each benchmark's axis values
    max_total_factor: float = DEFAULT_MAX_TOTAL_FACTOR
    budget_ns: int | None = None  # overall wall-clock budget

    # Recording
    benchmem: bool = False
    output: Path | None = None

    # Profiler collaborator
    cpuprofile: Path | None = None
    memprofile: Path | None = None
    blockprofile: Path | None = None


@dataclass
class CompareConfig:
    """Resolved configuration for one comparator invocation."""

    metric: str = METRIC_TIME
    alpha: float = 0.05
    outlier_k: float = 3.0
    cv_threshold: float = 0.05
    workers: int = 1


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: HarnessConfig) -> list[ValidationError]:
    """Validate a harness configuration.  Empty list means valid."""
    errors: list[ValidationError] = []

    if config.bench_pattern is not None:
        try:
            re.compile(config.bench_pattern)
        except re.error as exc:
            errors.append(
                ValidationError(
                    field="bench",
                    message=f"Invalid --bench pattern {config.bench_pattern!r}: {exc}",
                )
            )

    if config.count < 1:
        errors.append(
            ValidationError(field="count", message=f"--count must be >= 1 (got {config.count}).")
        )
    elif config.count < 2:
        errors.append(
            ValidationError(
                field="count",
                message=(
                    "--count=1 gives one sample per benchmark; "
                    "comparisons need at least 2 (10 is a good default)."
                ),
                severity="warning",
            )
        )

    if config.cpu is not None and (not config.cpu or any(v < 1 for v in config.cpu)):
        errors.append(
            ValidationError(field="cpu", message="--cpu values must be positive integers.")
        )

    if config.max_total_factor <= 1:
        errors.append(
            ValidationError(
                field="max_total_factor",
                message=f"Attempt cap factor must be > 1 (got {config.max_total_factor}).",
            )
        )

    if config.budget_ns is not None and config.budget_ns <= 0:
        errors.append(ValidationError(field="budget", message="--budget must be positive."))

    if config.blockprofile is not None:
        errors.append(
            ValidationError(
                field="blockprofile",
                message=(
                    "Block profiling has no CPython collector; "
                    f"{config.blockprofile} will record nothing."
                ),
                severity="warning",
            )
        )

    return errors


def validate_compare_config(config: CompareConfig) -> list[ValidationError]:
    """Validate a comparator configuration.  Empty list means valid."""
    errors: list[ValidationError] = []
    if config.metric not in METRICS:
        errors.append(
            ValidationError(
                field="metric",
                message=f"Unknown metric {config.metric!r}; choose from {', '.join(METRICS)}.",
            )
        )
    if not 0 < config.alpha < 1:
        errors.append(
            ValidationError(field="alpha", message=f"alpha must be in (0, 1), got {config.alpha}.")
        )
    if config.outlier_k <= 0:
        errors.append(
            ValidationError(
                field="outlier_k", message=f"outlier_k must be positive, got {config.outlier_k}."
            )
        )
    if config.cv_threshold <= 0:
        errors.append(
            ValidationError(
                field="cv_threshold",
                message=f"cv_threshold must be positive, got {config.cv_threshold}.",
            )
        )
    if config.workers < 1:
        errors.append(
            ValidationError(field="workers", message=f"workers must be >= 1, got {config.workers}.")
        )
    return errors


# ---------------------------------------------------------------------------
# YAML settings
# ---------------------------------------------------------------------------


def load_settings(settings_path: Path) -> dict[str, Any]:
    """Load a settings file.

    Settings format::

        bench: "fib|sort"
        benchtime: 2s
        count: 10
        cpu: [1, 2, 4]
        benchmem: true
        budget: 10m

        compare:
          metric: time
          alpha: 0.01
          outlier_k: 3.0
          cv_threshold: 0.05

    Returns:
        The parsed YAML mapping.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not valid YAML or not a mapping.
    """
    import yaml

    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    try:
        data = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {settings_path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings must be a YAML mapping, got {type(data).__name__}")
    return data


def _pick(cli: dict[str, Any], settings: dict[str, Any], key: str, default: Any) -> Any:
    value = cli.get(key)
    if value is not None:
        return value
    value = settings.get(key)
    if value is not None:
        return value
    return default


def _as_path(value: Any) -> Path | None:
    return Path(value) if value else None


def config_from_settings(
    settings: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> HarnessConfig:
    """Build a HarnessConfig from settings-file values and CLI overrides.

    CLI values that are not None take precedence.  String values for
    ``benchtime``, ``budget`` and ``cpu`` are parsed here, so a settings
    file may use either ``cpu: [1, 2]`` or ``cpu: "1,2"``.

    Raises:
        ValueError: If a value cannot be parsed.
    """
    cli = cli_overrides or {}

    benchtime = _pick(cli, settings, "benchtime", None)
    if benchtime is None:
        benchtime_value = BenchTime()
    elif isinstance(benchtime, BenchTime):
        benchtime_value = benchtime
    else:
        benchtime_value = parse_benchtime(str(benchtime))

    cpu = _pick(cli, settings, "cpu", None)
    if isinstance(cpu, str):
        cpu = parse_int_list(cpu)
    elif isinstance(cpu, int):
        cpu = [cpu]
    elif cpu is not None:
        cpu = [int(v) for v in cpu]

    budget = _pick(cli, settings, "budget", None)
    budget_ns = parse_duration(str(budget)) if budget is not None else None

    benchmem = bool(cli.get("benchmem")) or bool(settings.get("benchmem", False))

    return HarnessConfig(
        bench_pattern=_pick(cli, settings, "bench", None),
        benchtime=benchtime_value,
        count=int(_pick(cli, settings, "count", 1)),
        cpu=cpu,
        max_total_factor=float(
            _pick(cli, settings, "max_total_factor", DEFAULT_MAX_TOTAL_FACTOR)
        ),
        budget_ns=budget_ns,
        benchmem=benchmem,
        output=_as_path(_pick(cli, settings, "output", None)),
        cpuprofile=_as_path(_pick(cli, settings, "cpuprofile", None)),
        memprofile=_as_path(_pick(cli, settings, "memprofile", None)),
        blockprofile=_as_path(_pick(cli, settings, "blockprofile", None)),
    )


def compare_config_from_settings(
    settings: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> CompareConfig:
    """Build a CompareConfig from the ``compare`` section and CLI overrides."""
    cli = cli_overrides or {}
    section = settings.get("compare") or {}
    if not isinstance(section, dict):
        raise ValueError("Settings 'compare' must be a mapping")
    defaults = CompareConfig()
    return CompareConfig(
        metric=str(_pick(cli, section, "metric", defaults.metric)),
        alpha=float(_pick(cli, section, "alpha", defaults.alpha)),
        outlier_k=float(_pick(cli, section, "outlier_k", defaults.outlier_k)),
        cv_threshold=float(_pick(cli, section, "cv_threshold", defaults.cv_threshold)),
        workers=int(_pick(cli, section, "workers", defaults.workers)),
    )
