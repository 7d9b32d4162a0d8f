"""Tests for calibench.bench.config: durations, settings and validation."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from calibench.bench.calibrate import PlanMode
from calibench.bench.config import (
    BenchTime,
    CompareConfig,
    HarnessConfig,
    compare_config_from_settings,
    config_from_settings,
    load_settings,
    parse_benchtime,
    parse_duration,
    parse_int_list,
    validate_compare_config,
    validate_config,
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseDuration(unittest.TestCase):
    def test_units(self) -> None:
        cases = {
            "1s": 1_000_000_000,
            "500ms": 500_000_000,
            "250us": 250_000,
            "250µs": 250_000,
            "40ns": 40,
            "1.5s": 1_500_000_000,
            "2m": 120_000_000_000,
            "1m30s": 90_000_000_000,
            "1h": 3_600_000_000_000,
        }
        for text, expected in cases.items():
            with self.subTest(text=text):
                self.assertEqual(parse_duration(text), expected)

    def test_invalid(self) -> None:
        for text in ("", "10", "s", "1x", "1s junk", "0s", "-1s"):
            with self.subTest(text=text), self.assertRaises(ValueError):
                parse_duration(text)


class TestParseBenchtime(unittest.TestCase):
    def test_duration(self) -> None:
        benchtime = parse_benchtime("2s")
        self.assertFalse(benchtime.is_fixed)
        self.assertEqual(benchtime.target_ns, 2_000_000_000)
        self.assertEqual(str(benchtime), "2s")

    def test_fixed_count(self) -> None:
        """``20x`` means exactly 20 iterations, no calibration."""
        benchtime = parse_benchtime("20x")
        self.assertTrue(benchtime.is_fixed)
        plan = benchtime.new_plan()
        self.assertEqual(plan.mode, PlanMode.FIXED)
        self.assertEqual(plan.n, 20)
        self.assertEqual(str(benchtime), "20x")

    def test_zero_count_rejected(self) -> None:
        with self.assertRaises(ValueError):
            parse_benchtime("0x")

    def test_new_plan_is_fresh(self) -> None:
        benchtime = BenchTime()
        first = benchtime.new_plan()
        first.n = 5000
        self.assertEqual(benchtime.new_plan().n, 1)


class TestParseIntList(unittest.TestCase):
    def test_values(self) -> None:
        self.assertEqual(parse_int_list("1,2, 4"), [1, 2, 4])

    def test_invalid(self) -> None:
        for text in ("", "a", "1,0", ",,"):
            with self.subTest(text=text), self.assertRaises(ValueError):
                parse_int_list(text)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidateConfig(unittest.TestCase):
    def _fatal(self, config: HarnessConfig) -> list[str]:
        return [e.field for e in validate_config(config) if e.severity == "error"]

    def test_valid_config(self) -> None:
        config = HarnessConfig(bench_pattern=".", count=10)
        self.assertEqual(validate_config(config), [])

    def test_bad_pattern(self) -> None:
        self.assertEqual(self._fatal(HarnessConfig(bench_pattern="(", count=10)), ["bench"])

    def test_bad_count(self) -> None:
        self.assertEqual(self._fatal(HarnessConfig(count=0)), ["count"])

    def test_single_count_is_warning(self) -> None:
        errors = validate_config(HarnessConfig(count=1))
        self.assertEqual([(e.field, e.severity) for e in errors], [("count", "warning")])

    def test_bad_cpu(self) -> None:
        self.assertEqual(self._fatal(HarnessConfig(count=2, cpu=[1, 0])), ["cpu"])

    def test_bad_factor_and_budget(self) -> None:
        config = HarnessConfig(count=2, max_total_factor=1, budget_ns=0)
        self.assertEqual(self._fatal(config), ["max_total_factor", "budget"])

    def test_blockprofile_warns(self) -> None:
        errors = validate_config(HarnessConfig(count=2, blockprofile=Path("block.out")))
        self.assertEqual([(e.field, e.severity) for e in errors], [("blockprofile", "warning")])


class TestValidateCompareConfig(unittest.TestCase):
    def test_defaults_valid(self) -> None:
        self.assertEqual(validate_compare_config(CompareConfig()), [])

    def test_invalid_values(self) -> None:
        config = CompareConfig(metric="rss", alpha=1.5, outlier_k=0, cv_threshold=-1, workers=0)
        fields = [e.field for e in validate_compare_config(config)]
        self.assertEqual(fields, ["metric", "alpha", "outlier_k", "cv_threshold", "workers"])


# ---------------------------------------------------------------------------
# Settings files
# ---------------------------------------------------------------------------


class TestSettings(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _write(self, text: str) -> Path:
        path = self.tmpdir / "settings.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_load_settings(self) -> None:
        path = self._write(
            "bench: sort\n"
            "benchtime: 500ms\n"
            "count: 10\n"
            "cpu: [1, 2]\n"
            "benchmem: true\n"
            "budget: 5m\n"
            "compare:\n"
            "  alpha: 0.01\n"
        )
        settings = load_settings(path)
        config = config_from_settings(settings)
        self.assertEqual(config.bench_pattern, "sort")
        self.assertEqual(config.benchtime.target_ns, 500_000_000)
        self.assertEqual(config.count, 10)
        self.assertEqual(config.cpu, [1, 2])
        self.assertTrue(config.benchmem)
        self.assertEqual(config.budget_ns, 300_000_000_000)

        compare = compare_config_from_settings(settings)
        self.assertEqual(compare.alpha, 0.01)
        self.assertEqual(compare.metric, "time")

    def test_empty_file(self) -> None:
        self.assertEqual(load_settings(self._write("")), {})

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_settings(self.tmpdir / "nope.yaml")

    def test_not_a_mapping(self) -> None:
        with self.assertRaises(ValueError):
            load_settings(self._write("- a\n- b\n"))

    def test_invalid_yaml(self) -> None:
        with self.assertRaises(ValueError):
            load_settings(self._write("bench: [unclosed\n"))

    def test_cli_overrides_settings(self) -> None:
        settings = {"bench": "sort", "count": 10, "cpu": "1,2", "benchtime": "2s"}
        config = config_from_settings(
            settings,
            cli_overrides={"bench": "hash", "count": None, "cpu": "4", "benchtime": "20x"},
        )
        self.assertEqual(config.bench_pattern, "hash")
        self.assertEqual(config.count, 10)
        self.assertEqual(config.cpu, [4])
        self.assertEqual(config.benchtime.fixed_n, 20)

    def test_defaults_without_settings(self) -> None:
        config = config_from_settings({})
        self.assertIsNone(config.bench_pattern)
        self.assertEqual(config.count, 1)
        self.assertEqual(config.benchtime, BenchTime())
        self.assertIsNone(config.cpu)
        self.assertIsNone(config.output)

    def test_unparseable_value(self) -> None:
        with self.assertRaises(ValueError):
            config_from_settings({"benchtime": "soon"})

    def test_compare_section_must_be_mapping(self) -> None:
        with self.assertRaises(ValueError):
            compare_config_from_settings({"compare": ["alpha"]})


if __name__ == "__main__":
    unittest.main()
