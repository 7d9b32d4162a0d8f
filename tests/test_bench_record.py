"""Tests for calibench.bench.record."""

from __future__ import annotations

import tracemalloc
import unittest

from calibench.bench.record import (
    AllocationMeasurement,
    AllocationTracker,
    RunMeasurement,
    record_sample,
)


class TestRecordSample(unittest.TestCase):
    def test_divides_by_n(self) -> None:
        sample = record_sample(
            "join",
            4,
            RunMeasurement(n=1000, elapsed_ns=38_250_000),
            AllocationMeasurement(n=10, bytes_allocated=640, allocations=20),
        )
        self.assertEqual(sample.key, ("join", 4))
        self.assertEqual(sample.n, 1000)
        self.assertEqual(sample.ns_per_op, 38_250.0)
        self.assertEqual(sample.bytes_per_op, 64)
        self.assertEqual(sample.allocs_per_op, 2)

    def test_allocation_counts_floor(self) -> None:
        sample = record_sample(
            "x",
            1,
            RunMeasurement(n=1000, elapsed_ns=10),
            AllocationMeasurement(n=3, bytes_allocated=10, allocations=2),
        )
        self.assertEqual(sample.bytes_per_op, 3)
        self.assertEqual(sample.allocs_per_op, 0)

    def test_untracked_allocations_are_none(self) -> None:
        sample = record_sample("x", 1, RunMeasurement(n=10, elapsed_ns=1000))
        self.assertIsNone(sample.bytes_per_op)
        self.assertIsNone(sample.allocs_per_op)

    def test_zero_iterations_rejected(self) -> None:
        with self.assertRaises(ValueError):
            record_sample("x", 1, RunMeasurement(n=0, elapsed_ns=0))

    def test_zero_allocation_iterations_rejected(self) -> None:
        with self.assertRaises(ValueError):
            record_sample(
                "x",
                1,
                RunMeasurement(n=5, elapsed_ns=5),
                AllocationMeasurement(n=0, bytes_allocated=0, allocations=0),
            )


class TestAllocationTracker(unittest.TestCase):
    def test_counts_allocations_while_running(self) -> None:
        was_tracing = tracemalloc.is_tracing()
        tracker = AllocationTracker()
        tracker.start()
        kept = [bytearray(1024) for _ in range(100)]
        tracker.stop()
        tracker.close()

        self.assertGreaterEqual(tracker.bytes_allocated, 100 * 1024)
        self.assertGreater(tracker.allocations, 0)
        self.assertEqual(len(kept), 100)
        self.assertEqual(tracemalloc.is_tracing(), was_tracing)

    def test_stop_without_start_is_harmless(self) -> None:
        tracker = AllocationTracker()
        tracker.stop()
        tracker.close()
        self.assertEqual(tracker.bytes_allocated, 0)
        self.assertEqual(tracker.allocations, 0)

    def test_leaves_existing_tracing_running(self) -> None:
        tracemalloc.start()
        try:
            tracker = AllocationTracker()
            tracker.start()
            tracker.close()
            self.assertTrue(tracemalloc.is_tracing())
        finally:
            tracemalloc.stop()


if __name__ == "__main__":
    unittest.main()
