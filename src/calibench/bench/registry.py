"""Benchmark registration and discovery.

Benchmarks live in ordinary Python files.  Any module-level function
whose name starts with ``bench_`` is a benchmark; the :func:`benchmark`
decorator can rename it or give it its own axis values::

    from calibench import benchmark

    def bench_sum(b):
        data = list(range(1000))
        b.reset_timer()
        for _ in range(b.n):
            b.consume(sum(data))

    @benchmark(name="parallel_sum", axis=(1, 2, 4))
    def sum_in_threads(b):
        ...

``calibench run benchmarks.py --bench=sum`` loads the file into a
:class:`Registry` with :func:`load_registry`.
"""

from __future__ import annotations

import importlib
import importlib.util
import inspect
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Iterable, Iterator

from calibench.bench.context import BenchContext, Sink

log = logging.getLogger("calibench")

BENCH_PREFIX = "bench_"
DEFAULT_AXIS: tuple[int, ...] = (1,)
_OPTIONS_ATTR = "__calibench__"

Body = Callable[[BenchContext], Any]


@dataclass(frozen=True)
class BenchmarkSpec:
    """A registered benchmark.  Immutable once registered."""

    name: str
    body: Body
    axis_values: tuple[int, ...] = DEFAULT_AXIS
    sink: Sink = field(default_factory=Sink, compare=False, repr=False)

    def with_axis(self, axis_values: Iterable[int]) -> BenchmarkSpec:
        """Copy with different axis values, sharing the same sink."""
        return BenchmarkSpec(
            name=self.name,
            body=self.body,
            axis_values=_validate_axis(self.name, axis_values),
            sink=self.sink,
        )


def _validate_axis(name: str, axis_values: Iterable[int]) -> tuple[int, ...]:
    values = tuple(axis_values)
    if not values:
        raise ValueError(f"Benchmark '{name}' has no axis values")
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ValueError(f"Benchmark '{name}': axis values must be positive integers")
    return values


class Registry:
    """Ordered collection of benchmarks with unique names."""

    def __init__(self) -> None:
        self._specs: dict[str, BenchmarkSpec] = {}

    def register(
        self,
        name: str,
        body: Body,
        axis_values: Iterable[int] = DEFAULT_AXIS,
    ) -> BenchmarkSpec:
        """Register *body* under *name*.

        Raises:
            ValueError: If the name is empty, contains whitespace, is already
                registered, or the axis values are invalid.
        """
        if not name or any(ch.isspace() for ch in name):
            raise ValueError(f"Invalid benchmark name {name!r}")
        if name in self._specs:
            raise ValueError(f"Benchmark '{name}' is already registered")
        if not callable(body):
            raise ValueError(f"Benchmark '{name}' body is not callable")
        spec = BenchmarkSpec(name=name, body=body, axis_values=_validate_axis(name, axis_values))
        self._specs[name] = spec
        return spec

    def select(self, pattern: str | None) -> list[BenchmarkSpec]:
        """Benchmarks whose name matches *pattern* (``re.search``).

        ``None`` selects nothing; running benchmarks is opt-in.

        Raises:
            re.error: If *pattern* is not a valid regular expression.
        """
        if pattern is None:
            return []
        regex = re.compile(pattern)
        return [spec for spec in self._specs.values() if regex.search(spec.name)]

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[BenchmarkSpec]:
        return iter(self._specs.values())

    @classmethod
    def from_module(cls, module: ModuleType) -> Registry:
        """Collect the benchmarks defined in *module*, in definition order."""
        registry = cls()
        found: list[tuple[int, str, Body, tuple[int, ...]]] = []
        for attr, obj in vars(module).items():
            if not inspect.isfunction(obj) or obj.__module__ != module.__name__:
                continue
            options = getattr(obj, _OPTIONS_ATTR, None)
            if options is None and not attr.startswith(BENCH_PREFIX):
                continue
            options = options or {}
            line = obj.__code__.co_firstlineno
            found.append(
                (line, options.get("name") or attr, obj, options.get("axis") or DEFAULT_AXIS)
            )
        for _line, name, body, axis in sorted(found, key=lambda item: item[0]):
            registry.register(name, body, axis)
        return registry


def benchmark(
    name: str | None = None,
    *,
    axis: Iterable[int] | None = None,
) -> Callable[[Body], Body]:
    """Mark a function as a benchmark, optionally renaming it or setting axis values.

    Always called: ``@benchmark()``, ``@benchmark("name")`` or
    ``@benchmark(axis=(1, 2, 4))``.

    Raises:
        TypeError: If used bare as ``@benchmark``.
    """
    if callable(name):
        raise TypeError(
            f"@benchmark must be called; use @benchmark() on {getattr(name, '__name__', name)!r}"
        )

    def decorate(func: Body) -> Body:
        setattr(
            func,
            _OPTIONS_ATTR,
            {"name": name, "axis": tuple(axis) if axis is not None else None},
        )
        return func

    return decorate


def load_registry(target: str) -> Registry:
    """Import *target* (a ``.py`` path or a dotted module name) and collect benchmarks.

    Raises:
        FileNotFoundError: If *target* looks like a path that does not exist.
        ImportError: If the module cannot be imported.
    """
    module = _import_target(target)
    registry = Registry.from_module(module)
    log.debug("Loaded %d benchmarks from %s", len(registry), target)
    return registry


def _import_target(target: str) -> ModuleType:
    path = Path(target)
    if target.endswith(".py") or path.is_file():
        if not path.is_file():
            raise FileNotFoundError(f"Benchmark file not found: {target}")
        module_name = "calibench_target_" + re.sub(r"\W", "_", path.stem)
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load benchmarks from {target}")
        module = importlib.util.module_from_spec(spec)
        # Registered before exec so dataclasses and pickling can find it.
        sys.modules[module_name] = module
        # Allow sibling imports from the benchmark file's directory.
        parent = str(path.resolve().parent)
        if parent not in sys.path:
            sys.path.insert(0, parent)
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module
    return importlib.import_module(target)
