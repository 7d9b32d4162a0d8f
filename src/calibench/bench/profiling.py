"""Profiler collaborator for ``--cpuprofile`` / ``--memprofile`` / ``--blockprofile``.

The harness brackets the whole run in a :class:`ProfilerSession`.  The
session starts the requested profilers on entry and writes their output
files on exit:

- CPU: :mod:`cProfile`, written with ``Profile.dump_stats`` (readable with
  :mod:`pstats` or snakeviz).
- Memory: a :mod:`tracemalloc` snapshot, written with ``Snapshot.dump``
  (readable with ``tracemalloc.Snapshot.load``).
- Block: CPython has no blocking-event profiler; the request is logged
  and nothing is written.

Profiling changes what is measured.  Samples from a profiled run should
not be compared against samples from an unprofiled one.
"""

from __future__ import annotations

import cProfile
import logging
import tracemalloc
from pathlib import Path
from types import TracebackType

log = logging.getLogger("calibench")


class ProfilerSession:
    """Context manager that runs the requested profilers around a block."""

    def __init__(
        self,
        *,
        cpuprofile: Path | None = None,
        memprofile: Path | None = None,
        blockprofile: Path | None = None,
    ) -> None:
        self.cpuprofile = cpuprofile
        self.memprofile = memprofile
        self.blockprofile = blockprofile
        self._profiler: cProfile.Profile | None = None
        self._owns_tracing = False

    @property
    def active(self) -> bool:
        return self.cpuprofile is not None or self.memprofile is not None

    def __enter__(self) -> ProfilerSession:
        if self.blockprofile is not None:
            log.warning(
                "Block profiling is not available on CPython; %s will not be written",
                self.blockprofile,
            )
        if self.memprofile is not None and not tracemalloc.is_tracing():
            tracemalloc.start(25)
            self._owns_tracing = True
        if self.cpuprofile is not None:
            self._profiler = cProfile.Profile()
            self._profiler.enable()
        if self.active:
            log.info("Profiling enabled; timings include profiler overhead")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if self._profiler is not None:
                self._profiler.disable()
                assert self.cpuprofile is not None
                self._write_cpu(self.cpuprofile)
            if self.memprofile is not None and tracemalloc.is_tracing():
                self._write_memory(self.memprofile)
        finally:
            self._profiler = None
            if self._owns_tracing:
                tracemalloc.stop()
                self._owns_tracing = False

    def _write_cpu(self, path: Path) -> None:
        assert self._profiler is not None
        path.parent.mkdir(parents=True, exist_ok=True)
        self._profiler.dump_stats(str(path))
        log.info("CPU profile written to %s", path)

    def _write_memory(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tracemalloc.take_snapshot().dump(str(path))
        log.info("Memory profile written to %s", path)
