#!/usr/bin/env python3

"""
Unit tests for phase monitoring and the throughput reporter.
"""

import unittest
import sys
import os
import time

# Add the parent directory to the path to import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from transcript_mapping_pipeline.core.exceptions import MemoryError as PipelineMemoryError
from transcript_mapping_pipeline.utils.performance_monitor import (
    PerformanceMonitor, ProgressCounter, ThroughputReporter
)


class TestPerformanceMonitor(unittest.TestCase):
    """Test phase timing and memory checks."""

    def test_phase_context(self):
        monitor = PerformanceMonitor(enable_memory_monitoring=False)
        with monitor.phase_context("read_tagging") as metrics:
            metrics.operations_count = 42

        self.assertIsNone(monitor.current_phase)
        summary = monitor.get_performance_summary()
        self.assertIn("read_tagging", summary["phases"])
        self.assertEqual(summary["phases"]["read_tagging"]["operations_count"], 42)
        self.assertIsNotNone(metrics.end_time)

    def test_phase_ends_on_error(self):
        monitor = PerformanceMonitor(enable_memory_monitoring=False)
        with self.assertRaises(RuntimeError):
            with monitor.phase_context("annotation_loading"):
                raise RuntimeError("boom")
        self.assertIsNone(monitor.current_phase)

    def test_memory_disabled(self):
        monitor = PerformanceMonitor(enable_memory_monitoring=False)
        self.assertEqual(monitor.get_memory_usage(), 0.0)
        self.assertTrue(monitor.check_memory_limit())

    def test_memory_limit_exceeded(self):
        """The running interpreter alone uses more than one megabyte."""
        monitor = PerformanceMonitor(memory_limit_mb=1)
        self.assertGreater(monitor.get_memory_usage(), 1.0)
        with self.assertRaises(PipelineMemoryError) as ctx:
            monitor.check_memory_limit()
        self.assertEqual(ctx.exception.limit, 1)


class TestThroughputReporter(unittest.TestCase):
    """Test the background progress reporter."""

    def setUp(self):
        self.messages = []
        self.counter = ProgressCounter()

    def test_stop_is_prompt_with_long_interval(self):
        """Stopping does not wait for the next reporting tick."""
        reporter = ThroughputReporter(self.counter, interval=3600, emit=self.messages.append)
        reporter.start()
        self.assertTrue(reporter.running)

        started = time.monotonic()
        reporter.stop()
        self.assertLess(time.monotonic() - started, 5.0)
        self.assertFalse(reporter.running)

        # only the final report
        self.assertEqual(reporter.reports, 1)
        self.assertEqual(len(self.messages), 1)

    def test_periodic_reports(self):
        reporter = ThroughputReporter(self.counter, interval=0.01, emit=self.messages.append)
        with reporter:
            for _ in range(1500):
                self.counter.increment()
            time.sleep(0.2)

        self.assertGreaterEqual(reporter.reports, 2)
        self.assertEqual(self.messages[-1].split(" ")[0], "1,500")

    def test_report_rate(self):
        """Throughput is expressed in thousands of reads per second."""
        ticks = iter([100.0, 102.0])
        reporter = ThroughputReporter(self.counter, clock=lambda: next(ticks),
                                      emit=self.messages.append)
        reporter._started_at = reporter.clock()
        for _ in range(4000):
            self.counter.increment()

        message = reporter.report()
        self.assertEqual(message, "4,000 reads processed, 2.00k reads/sec")
        self.assertEqual(self.messages, [message])

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            ThroughputReporter(self.counter, interval=0)

    def test_stop_without_start(self):
        reporter = ThroughputReporter(self.counter, emit=self.messages.append)
        reporter.stop()
        self.assertEqual(reporter.reports, 0)


if __name__ == '__main__':
    unittest.main()
