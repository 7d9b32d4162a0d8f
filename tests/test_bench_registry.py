"""Tests for calibench.bench.registry."""

from __future__ import annotations

import re
import tempfile
import textwrap
import types
import unittest
from pathlib import Path

from calibench.bench.registry import Registry, benchmark, load_registry


def _noop(b) -> None:
    pass


class TestRegistry(unittest.TestCase):
    def test_register(self) -> None:
        registry = Registry()
        spec = registry.register("join", _noop, (1, 4))
        self.assertEqual(list(registry), [spec])
        self.assertEqual(spec.axis_values, (1, 4))
        self.assertEqual(len(registry), 1)

    def test_duplicate_name_rejected(self) -> None:
        registry = Registry()
        registry.register("join", _noop)
        with self.assertRaises(ValueError):
            registry.register("join", _noop)

    def test_invalid_names_rejected(self) -> None:
        registry = Registry()
        for name in ("", "two words", "tab\tname"):
            with self.subTest(name=name), self.assertRaises(ValueError):
                registry.register(name, _noop)

    def test_invalid_axis_rejected(self) -> None:
        registry = Registry()
        for axis in ((), (0,), (1, -2), (True,), (1.5,)):
            with self.subTest(axis=axis), self.assertRaises(ValueError):
                registry.register("x", _noop, axis)

    def test_non_callable_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Registry().register("x", 42)  # type: ignore[arg-type]

    def test_select_uses_search(self) -> None:
        registry = Registry()
        for name in ("sort_small", "sort_large", "hash"):
            registry.register(name, _noop)
        self.assertEqual([s.name for s in registry.select("sort")], ["sort_small", "sort_large"])
        self.assertEqual([s.name for s in registry.select("^h")], ["hash"])
        self.assertEqual(len(registry.select(".")), 3)

    def test_select_none_runs_nothing(self) -> None:
        registry = Registry()
        registry.register("x", _noop)
        self.assertEqual(registry.select(None), [])

    def test_select_invalid_pattern(self) -> None:
        with self.assertRaises(re.error):
            Registry().select("(")

    def test_with_axis_shares_sink(self) -> None:
        spec = Registry().register("x", _noop)
        other = spec.with_axis([2, 8])
        self.assertEqual(other.axis_values, (2, 8))
        self.assertIs(other.sink, spec.sink)
        self.assertEqual(spec.axis_values, (1,))


class TestFromModule(unittest.TestCase):
    def test_collects_prefixed_and_decorated_functions(self) -> None:
        module = types.ModuleType("fake_benchmarks")
        source = textwrap.dedent(
            """
            from calibench import benchmark

            def bench_first(b):
                pass

            def helper(b):
                pass

            @benchmark(name="renamed", axis=(1, 2))
            def second(b):
                pass

            def bench_third(b):
                pass
            """
        )
        exec(compile(source, "<fake_benchmarks>", "exec"), module.__dict__)

        registry = Registry.from_module(module)
        self.assertEqual([s.name for s in registry], ["bench_first", "renamed", "bench_third"])
        self.assertEqual(registry.select("^renamed$")[0].axis_values, (1, 2))

    def test_decorator_sets_options(self) -> None:
        @benchmark(axis=[4])
        def bench_x(b) -> None:
            pass

        self.assertEqual(bench_x.__calibench__, {"name": None, "axis": (4,)})  # type: ignore[attr-defined]

    def test_bare_decorator_rejected(self) -> None:
        def bench_x(b) -> None:
            pass

        with self.assertRaises(TypeError) as ctx:
            benchmark(bench_x)  # type: ignore[arg-type]
        self.assertIn("@benchmark()", str(ctx.exception))
        self.assertIn("bench_x", str(ctx.exception))


class TestLoadRegistry(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_load_from_file(self) -> None:
        path = self.tmpdir / "my_benchmarks.py"
        path.write_text(
            "def bench_sum(b):\n"
            "    for _ in range(b.n):\n"
            "        b.consume(sum(range(10)))\n"
        )
        registry = load_registry(str(path))
        self.assertEqual([s.name for s in registry], ["bench_sum"])

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_registry(str(self.tmpdir / "nope.py"))

    def test_import_error_propagates(self) -> None:
        path = self.tmpdir / "broken_benchmarks.py"
        path.write_text("raise RuntimeError('cannot import')\n")
        with self.assertRaises(RuntimeError):
            load_registry(str(path))

    def test_load_module_by_name(self) -> None:
        registry = load_registry("calibench.bench.timer")
        self.assertEqual(len(registry), 0)


if __name__ == "__main__":
    unittest.main()
