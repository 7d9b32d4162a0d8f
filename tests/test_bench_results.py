"""Tests for calibench.bench.results: samples, sample sets and sample files."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from bench_test_helpers import make_sample, sample_file_text

from calibench.bench.results import (
    METRIC_ALLOCS,
    METRIC_BYTES,
    METRIC_TIME,
    Sample,
    SampleFileError,
    SampleFormatError,
    SampleSet,
    group_samples,
    parse_sample_text,
    read_sample_file,
    write_sample_file,
)


# ---------------------------------------------------------------------------
# Sample line format
# ---------------------------------------------------------------------------


class TestSampleLine(unittest.TestCase):
    """Tests for Sample.to_line / Sample.from_line."""

    def test_to_line_time_only(self) -> None:
        sample = Sample(name="join", axis_value=1, n=1000, elapsed_ns=38_250_000)
        self.assertEqual(sample.to_line(), "join-1\t1000\t38250 ns/op")

    def test_to_line_with_allocations(self) -> None:
        sample = Sample(
            name="join", axis_value=4, n=10, elapsed_ns=100, bytes_per_op=64, allocs_per_op=2
        )
        self.assertEqual(sample.to_line(), "join-4\t10\t10 ns/op\t64 B/op\t2 allocs/op")

    def test_roundtrip_zero_allocations(self) -> None:
        """Zero B/op and allocs/op must survive as 0, not as missing."""
        sample = Sample(
            name="noalloc", axis_value=2, n=500, elapsed_ns=1_500, bytes_per_op=0, allocs_per_op=0
        )
        restored = Sample.from_line(sample.to_line())
        self.assertEqual(restored, sample)
        self.assertEqual(restored.bytes_per_op, 0)
        self.assertEqual(restored.allocs_per_op, 0)

    def test_roundtrip_fractional_ns_per_op(self) -> None:
        sample = Sample(name="tiny", axis_value=1, n=3, elapsed_ns=10)
        line = sample.to_line()
        self.assertIn("3.3333333333333335 ns/op", line)
        self.assertEqual(Sample.from_line(line), sample)

    def test_roundtrip_name_with_dash(self) -> None:
        sample = Sample(name="sort-1k", axis_value=8, n=100, elapsed_ns=12_300)
        self.assertEqual(Sample.from_line(sample.to_line()), sample)

    def test_parse_without_axis_suffix(self) -> None:
        sample = Sample.from_line("lookup\t200\t15.5 ns/op")
        self.assertEqual(sample.key, ("lookup", 1))
        self.assertEqual(sample.n, 200)
        self.assertEqual(sample.ns_per_op, 15.5)

    def test_parse_ignores_unknown_units(self) -> None:
        sample = Sample.from_line("copy-2  1000  250 ns/op  4096.00 MB/s  16 B/op")
        self.assertEqual(sample.ns_per_op, 250)
        self.assertEqual(sample.bytes_per_op, 16)
        self.assertIsNone(sample.allocs_per_op)

    def test_parse_errors(self) -> None:
        bad_lines = {
            "too few fields": "join-1\t1000",
            "missing ns/op": "join-1\t1000\t64 B/op",
            "zero N": "join-1\t0\t10 ns/op",
            "non-integer N": "join-1\tmany\t10 ns/op",
            "unpaired value": "join-1\t10\t10 ns/op\t64",
            "bad number": "join-1\t10\tfast ns/op",
            "nan": "join-1\t10\tnan ns/op",
            "negative time": "join-1\t10\t-5 ns/op",
            "negative bytes": "join-1\t10\t5 ns/op\t-1 B/op",
            "fractional allocs": "join-1\t10\t5 ns/op\t1.5 allocs/op",
        }
        for label, line in bad_lines.items():
            with self.subTest(label), self.assertRaises(SampleFormatError):
                Sample.from_line(line)

    def test_metric_accessors(self) -> None:
        sample = make_sample("m", 12.5, bytes_per_op=32, allocs_per_op=1)
        self.assertEqual(sample.metric(METRIC_TIME), 12.5)
        self.assertEqual(sample.metric(METRIC_BYTES), 32.0)
        self.assertEqual(sample.metric(METRIC_ALLOCS), 1.0)
        self.assertIsNone(make_sample("m", 1).metric(METRIC_BYTES))
        with self.assertRaises(ValueError):
            sample.metric("rss")


# ---------------------------------------------------------------------------
# SampleSet and grouping
# ---------------------------------------------------------------------------


class TestSampleSet(unittest.TestCase):
    def test_append_rejects_other_key(self) -> None:
        sample_set = SampleSet("a", 1)
        sample_set.append(make_sample("a", 10))
        with self.assertRaises(ValueError):
            sample_set.append(make_sample("a", 10, axis_value=2))
        self.assertEqual(len(sample_set), 1)

    def test_values_skip_missing_metric(self) -> None:
        sample_set = SampleSet("a", 1)
        sample_set.append(make_sample("a", 10, bytes_per_op=8))
        sample_set.append(make_sample("a", 20))
        self.assertEqual(sample_set.values(METRIC_TIME), [10.0, 20.0])
        self.assertEqual(sample_set.values(METRIC_BYTES), [8.0])

    def test_group_samples_first_appearance_order(self) -> None:
        samples = [
            make_sample("b", 1),
            make_sample("a", 1),
            make_sample("b", 2),
            make_sample("b", 3, axis_value=2),
        ]
        groups = group_samples(samples)
        self.assertEqual(list(groups), [("b", 1), ("a", 1), ("b", 2)])
        self.assertEqual(groups[("b", 1)].values(), [1.0, 2.0])


# ---------------------------------------------------------------------------
# Sample files
# ---------------------------------------------------------------------------


class TestParseSampleText(unittest.TestCase):
    def test_header_and_samples(self) -> None:
        text = sample_file_text(
            [make_sample("a", 10), make_sample("a", 11)],
            header={"goos": "linux", "cpu": "Example CPU @ 3.00GHz"},
        )
        parsed = parse_sample_text(text)
        self.assertEqual(parsed.metadata, {"goos": "linux", "cpu": "Example CPU @ 3.00GHz"})
        self.assertEqual(len(parsed.samples), 2)
        self.assertEqual(parsed.skipped_lines, 0)

    def test_malformed_lines_skipped_with_warning(self) -> None:
        text = "a-1\t10\t5 ns/op\nnot a sample\n\n# comment\na-1\t10\t6 ns/op\n"
        with self.assertLogs("calibench", level="WARNING") as cm:
            parsed = parse_sample_text(text, source="old.txt")
        self.assertEqual(len(parsed.samples), 2)
        self.assertEqual(parsed.skipped_lines, 1)
        self.assertIn("old.txt:2", cm.output[0])

    def test_sample_sets(self) -> None:
        parsed = parse_sample_text("a-1 1 5 ns/op\nb-2 1 6 ns/op\na-1 1 7 ns/op\n")
        sets = parsed.sample_sets()
        self.assertEqual(list(sets), [("a", 1), ("b", 2)])
        self.assertEqual(len(sets[("a", 1)]), 2)


class TestSampleFileIO(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.tmpdir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_write_then_read(self) -> None:
        samples = [
            make_sample("a", 10, bytes_per_op=0, allocs_per_op=0),
            make_sample("a", 12.25, bytes_per_op=16, allocs_per_op=1),
            make_sample("b", 7, axis_value=4),
        ]
        path = self.tmpdir / "out" / "samples.txt"
        write_sample_file(path, samples, metadata={"goos": "linux", "empty": ""})

        loaded = read_sample_file(path)
        self.assertEqual(loaded.samples, samples)
        self.assertEqual(loaded.metadata, {"goos": "linux"})
        self.assertEqual(loaded.path, path)

    def test_missing_file(self) -> None:
        with self.assertRaises(SampleFileError):
            read_sample_file(self.tmpdir / "missing.txt")

    def test_not_utf8(self) -> None:
        path = self.tmpdir / "binary.txt"
        path.write_bytes(b"\xff\xfe\x00garbage")
        with self.assertRaises(SampleFileError):
            read_sample_file(path)

    def test_no_valid_samples(self) -> None:
        path = self.tmpdir / "empty.txt"
        path.write_text("goos: linux\njust noise here\n", encoding="utf-8")
        with self.assertLogs("calibench", level="WARNING"):
            with self.assertRaises(SampleFileError):
                read_sample_file(path)


if __name__ == "__main__":
    unittest.main()
