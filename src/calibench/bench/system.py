"""Environment capture for sample-file headers.

A sample file starts with ``key: value`` lines describing where the
samples were recorded (OS, architecture, CPU model, interpreter) so two
files can be checked for comparability before ``calibench compare``.

Supports Linux and macOS for the CPU model; other platforms report
``unknown``.  All capture is best-effort: failures give defaults, never
exceptions.
"""

from __future__ import annotations

import logging
import os
import platform
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger("calibench")


@dataclass
class EnvironmentInfo:
    """Where and with what a set of samples was recorded."""

    os_name: str = ""
    arch: str = ""
    cpu_model: str = "unknown"
    cpu_count: int = 0
    python_version: str = ""
    python_implementation: str = ""
    calibench_version: str = ""
    load_avg_1m: float | None = None
    timestamp: str = ""

    def to_header(self) -> dict[str, str]:
        """Header metadata in the order it is written to a sample file."""
        header = {
            "goos": self.os_name.lower(),
            "goarch": self.arch,
            "cpu": self.cpu_model,
            "cpus": str(self.cpu_count),
            "python": f"{self.python_implementation} {self.python_version}",
            "calibench": self.calibench_version,
        }
        if self.load_avg_1m is not None:
            header["load"] = f"{self.load_avg_1m:.2f}"
        if self.timestamp:
            header["date"] = self.timestamp
        return header


def capture_environment() -> EnvironmentInfo:
    """Capture the current environment."""
    from calibench import __version__

    info = EnvironmentInfo(
        os_name=platform.system(),
        arch=platform.machine(),
        cpu_count=os.cpu_count() or 0,
        python_version=platform.python_version(),
        python_implementation=platform.python_implementation(),
        calibench_version=__version__,
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%S%z"),
    )
    info.cpu_model = _cpu_model()
    try:
        info.load_avg_1m = round(os.getloadavg()[0], 2)
    except (AttributeError, OSError):
        pass
    return info


def _cpu_model() -> str:
    if sys.platform == "linux":
        return _cpu_model_linux()
    if sys.platform == "darwin":
        return _cpu_model_darwin()
    log.debug("CPU model capture not supported on %s", sys.platform)
    return platform.processor() or "unknown"


def _cpu_model_linux() -> str:
    """First ``model name`` from /proc/cpuinfo (all cores report the same)."""
    try:
        cpuinfo = Path("/proc/cpuinfo").read_text()
    except OSError:
        return "unknown"
    for line in cpuinfo.splitlines():
        if line.startswith("model name"):
            return line.split(":", 1)[1].strip()
    return platform.processor() or "unknown"


def _cpu_model_darwin() -> str:
    try:
        proc = subprocess.run(
            ["sysctl", "-n", "machdep.cpu.brand_string"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except Exception:  # noqa: BLE001
        return "unknown"
    if proc.returncode != 0 or not proc.stdout.strip():
        return "unknown"
    return proc.stdout.strip()


# ---------------------------------------------------------------------------
# Comparability check
# ---------------------------------------------------------------------------

_COMPARABILITY_KEYS = ("goos", "goarch", "cpu", "python")


def environment_mismatches(
    baseline: dict[str, str],
    candidate: dict[str, str],
) -> list[str]:
    """Describe header keys whose values differ between two sample files.

    Only keys present in both headers are compared; a difference does not
    stop a comparison, it is reported as a warning.
    """
    mismatches: list[str] = []
    for key in _COMPARABILITY_KEYS:
        if key in baseline and key in candidate and baseline[key] != candidate[key]:
            mismatches.append(f"{key}: {baseline[key]!r} vs {candidate[key]!r}")
    return mismatches
