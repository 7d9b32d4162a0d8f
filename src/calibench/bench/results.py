"""Benchmark sample data structures and the sample record text format.

Hierarchy::

    SampleFile (one harness invocation written to disk)
      → metadata: dict[str, str]        header lines "key: value"
      → samples: list[Sample]           one sample line per completed run

    SampleSet (one (name, axis_value) group, in run order)
      → samples: list[Sample]

Sample line format (tab separated)::

    <name>-<axis>  <N>  <ns/op> ns/op  [<B> B/op]  [<allocs> allocs/op]
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

log = logging.getLogger("calibench")

METRIC_TIME = "time"
METRIC_BYTES = "bytes"
METRIC_ALLOCS = "allocs"
METRICS = (METRIC_TIME, METRIC_BYTES, METRIC_ALLOCS)

_NAME_RE = re.compile(r"^(?P<name>\S+?)(?:-(?P<axis>\d+))?$")
_HEADER_RE = re.compile(r"^(?P<key>[A-Za-z][\w.-]*):\s+(?P<value>.*)$")


class SampleFormatError(ValueError):
    """A line is not a valid sample record."""


class SampleFileError(Exception):
    """A sample file cannot be used at all (unreadable or no valid samples)."""


# ---------------------------------------------------------------------------
# Sample
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sample:
    """One normalized measurement from a single completed run."""

    name: str
    axis_value: int
    n: int
    elapsed_ns: int
    bytes_per_op: int | None = None
    allocs_per_op: int | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.name, self.axis_value)

    @property
    def ns_per_op(self) -> float:
        return self.elapsed_ns / self.n

    def metric(self, metric: str) -> float | None:
        """Value of *metric* for this sample, or None if not recorded."""
        if metric == METRIC_TIME:
            return self.ns_per_op
        if metric == METRIC_BYTES:
            return None if self.bytes_per_op is None else float(self.bytes_per_op)
        if metric == METRIC_ALLOCS:
            return None if self.allocs_per_op is None else float(self.allocs_per_op)
        raise ValueError(f"Unknown metric {metric!r}; expected one of {', '.join(METRICS)}")

    def to_line(self) -> str:
        """Serialize to a sample record line (no trailing newline)."""
        parts = [
            f"{self.name}-{self.axis_value}",
            str(self.n),
            f"{_format_ns_per_op(self.elapsed_ns, self.n)} ns/op",
        ]
        if self.bytes_per_op is not None:
            parts.append(f"{self.bytes_per_op} B/op")
        if self.allocs_per_op is not None:
            parts.append(f"{self.allocs_per_op} allocs/op")
        return "\t".join(parts)

    @classmethod
    def from_line(cls, line: str) -> Sample:
        """Parse a sample record line.

        Raises:
            SampleFormatError: If the line is not a valid record.
        """
        tokens = line.split()
        if len(tokens) < 4:
            raise SampleFormatError(f"expected at least 4 fields, got {len(tokens)}")

        m = _NAME_RE.match(tokens[0])
        if not m:
            raise SampleFormatError(f"invalid benchmark name {tokens[0]!r}")
        name = m.group("name")
        axis_value = int(m.group("axis")) if m.group("axis") else 1

        try:
            n = int(tokens[1])
        except ValueError:
            raise SampleFormatError(f"invalid iteration count {tokens[1]!r}") from None
        if n < 1:
            raise SampleFormatError(f"iteration count must be >= 1, got {n}")

        rest = tokens[2:]
        if len(rest) % 2:
            raise SampleFormatError("measurements must be <value> <unit> pairs")

        ns_per_op: float | None = None
        bytes_per_op: int | None = None
        allocs_per_op: int | None = None
        for value, unit in zip(rest[::2], rest[1::2]):
            if unit == "ns/op":
                ns_per_op = _parse_number(value, unit)
                if not math.isfinite(ns_per_op) or ns_per_op < 0:
                    raise SampleFormatError(f"invalid ns/op {value!r}")
            elif unit == "B/op":
                bytes_per_op = _parse_count(value, unit)
            elif unit == "allocs/op":
                allocs_per_op = _parse_count(value, unit)
            else:
                # Other metrics (MB/s, custom units) are carried by some
                # producers; they are not part of a Sample.
                _parse_number(value, unit)

        if ns_per_op is None:
            raise SampleFormatError("missing ns/op measurement")

        return cls(
            name=name,
            axis_value=axis_value,
            n=n,
            elapsed_ns=round(ns_per_op * n),
            bytes_per_op=bytes_per_op,
            allocs_per_op=allocs_per_op,
        )


def _format_ns_per_op(elapsed_ns: int, n: int) -> str:
    """Integer when exact, else the shortest float that round-trips."""
    if elapsed_ns % n == 0:
        return str(elapsed_ns // n)
    return repr(elapsed_ns / n)


def _parse_number(value: str, unit: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise SampleFormatError(f"invalid value {value!r} for {unit}") from None


def _parse_count(value: str, unit: str) -> int:
    try:
        count = int(value)
    except ValueError:
        raise SampleFormatError(f"invalid integer {value!r} for {unit}") from None
    if count < 0:
        raise SampleFormatError(f"negative {unit} {value!r}")
    return count


# ---------------------------------------------------------------------------
# SampleSet
# ---------------------------------------------------------------------------


@dataclass
class SampleSet:
    """Samples for one (name, axis_value) group, in run order."""

    name: str
    axis_value: int
    samples: list[Sample] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, int]:
        return (self.name, self.axis_value)

    def append(self, sample: Sample) -> None:
        if sample.key != self.key:
            raise ValueError(
                f"Sample {sample.name}-{sample.axis_value} does not belong to "
                f"set {self.name}-{self.axis_value}"
            )
        self.samples.append(sample)

    def values(self, metric: str = METRIC_TIME) -> list[float]:
        """Metric values of all samples that recorded *metric*."""
        values = []
        for sample in self.samples:
            value = sample.metric(metric)
            if value is not None:
                values.append(value)
        return values

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)


def group_samples(samples: Iterable[Sample]) -> dict[tuple[str, int], SampleSet]:
    """Group samples into SampleSets keyed by (name, axis_value).

    Dict order follows the first appearance of each key.
    """
    groups: dict[tuple[str, int], SampleSet] = {}
    for sample in samples:
        group = groups.get(sample.key)
        if group is None:
            group = groups[sample.key] = SampleSet(sample.name, sample.axis_value)
        group.append(sample)
    return groups


# ---------------------------------------------------------------------------
# Sample files
# ---------------------------------------------------------------------------


@dataclass
class SampleFile:
    """Contents of a sample file."""

    path: Path
    metadata: dict[str, str] = field(default_factory=dict)
    samples: list[Sample] = field(default_factory=list)
    skipped_lines: int = 0

    def sample_sets(self) -> dict[tuple[str, int], SampleSet]:
        return group_samples(self.samples)


def parse_sample_text(text: str, *, source: str = "<input>") -> SampleFile:
    """Parse sample file text, skipping malformed lines with a warning."""
    result = SampleFile(path=Path(source))
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        header = _HEADER_RE.match(line)
        if header:
            result.metadata[header.group("key")] = header.group("value").strip()
            continue
        try:
            result.samples.append(Sample.from_line(line))
        except SampleFormatError as exc:
            result.skipped_lines += 1
            log.warning("%s:%d: skipping malformed line (%s): %s", source, lineno, exc, line)
    return result


def read_sample_file(path: Path) -> SampleFile:
    """Read a sample file.

    Raises:
        SampleFileError: If the file cannot be read, is not UTF-8, or
            contains no valid sample lines.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SampleFileError(f"Cannot read sample file {path}: {exc}") from exc

    result = parse_sample_text(text, source=str(path))
    result.path = path
    if not result.samples:
        raise SampleFileError(
            f"No valid sample lines in {path} ({result.skipped_lines} malformed lines skipped)"
        )
    return result


def format_header(metadata: dict[str, str]) -> list[str]:
    # Empty values would not read back as header lines.
    return [f"{key}: {value}" for key, value in metadata.items() if str(value).strip()]


def write_sample_file(
    path: Path,
    samples: Iterable[Sample],
    *,
    metadata: dict[str, str] | None = None,
) -> None:
    """Write header lines and sample lines to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        for line in format_header(metadata or {}):
            f.write(line + "\n")
        count = 0
        for sample in samples:
            f.write(sample.to_line() + "\n")
            count += 1
    log.info("Wrote %d samples to %s", count, path)
