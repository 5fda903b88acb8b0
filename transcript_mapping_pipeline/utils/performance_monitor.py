#!/usr/bin/env python3

"""
Performance monitoring for the transcript mapping pipeline.

Provides phase timing and memory tracking, plus a background reporter that
logs read throughput while the main loop streams records.
"""

import time
import logging
import threading
import psutil
from dataclasses import dataclass
from typing import Callable, Optional, Dict, Any
from contextlib import contextmanager

from ..core.exceptions import MemoryError as PipelineMemoryError


@dataclass
class PerformanceMetrics:
    """Container for performance metrics."""
    start_time: float
    end_time: Optional[float] = None
    peak_memory_mb: float = 0.0
    current_memory_mb: float = 0.0
    operations_count: int = 0
    phase_name: str = ""

    @property
    def elapsed_time(self) -> float:
        """Get elapsed time in seconds."""
        if self.end_time is None:
            return time.time() - self.start_time
        return self.end_time - self.start_time

    @property
    def operations_per_second(self) -> float:
        """Get operations per second."""
        elapsed = self.elapsed_time
        if elapsed > 0 and self.operations_count > 0:
            return self.operations_count / elapsed
        return 0.0


class PerformanceMonitor:
    """Phase timing and memory monitoring."""

    def __init__(self, memory_limit_mb: int = 4096, enable_memory_monitoring: bool = True):
        self.memory_limit_mb = memory_limit_mb
        self.start_time = time.time()
        self.phase_metrics: Dict[str, PerformanceMetrics] = {}
        self.current_phase: Optional[str] = None

        self.process = psutil.Process() if enable_memory_monitoring else None

    def get_memory_usage(self) -> float:
        """Get current memory usage in MB."""
        if not self.process:
            return 0.0

        try:
            memory_mb = self.process.memory_info().rss / 1024 / 1024
        except psutil.Error as e:
            logging.warning(f"Error getting memory usage: {e}")
            return 0.0

        # Update peak memory for current phase
        if self.current_phase and self.current_phase in self.phase_metrics:
            metrics = self.phase_metrics[self.current_phase]
            metrics.current_memory_mb = memory_mb
            metrics.peak_memory_mb = max(metrics.peak_memory_mb, memory_mb)

        return memory_mb

    def check_memory_limit(self) -> bool:
        """Check if memory usage exceeds limit."""
        current_memory = self.get_memory_usage()

        if current_memory > self.memory_limit_mb:
            error_msg = "Memory usage exceeded limit"
            logging.warning(f"{error_msg}: {current_memory:.1f}MB > {self.memory_limit_mb}MB")
            raise PipelineMemoryError(error_msg, current_memory, self.memory_limit_mb)

        return True

    def start_phase(self, phase_name: str) -> None:
        """Start monitoring a processing phase."""
        if self.current_phase:
            self.end_phase()

        self.current_phase = phase_name
        self.phase_metrics[phase_name] = PerformanceMetrics(
            start_time=time.time(),
            phase_name=phase_name
        )
        self.get_memory_usage()

        logging.info(f"Started phase: {phase_name}")

    def end_phase(self) -> Optional[PerformanceMetrics]:
        """End the current phase and return metrics."""
        if not self.current_phase:
            return None

        self.get_memory_usage()
        metrics = self.phase_metrics[self.current_phase]
        metrics.end_time = time.time()

        logging.info(f"Completed phase {self.current_phase} in {metrics.elapsed_time:.2f}s "
                     f"(peak memory: {metrics.peak_memory_mb:.1f}MB)")

        self.current_phase = None
        return metrics

    @contextmanager
    def phase_context(self, phase_name: str):
        """Context manager for monitoring a phase."""
        self.start_phase(phase_name)
        try:
            yield self.phase_metrics[phase_name]
        finally:
            self.end_phase()

    def get_total_elapsed_time(self) -> float:
        """Get total elapsed time since monitor creation."""
        return time.time() - self.start_time

    def get_peak_memory(self) -> float:
        """Get peak memory usage across all phases."""
        if not self.phase_metrics:
            return self.get_memory_usage()

        return max(metrics.peak_memory_mb for metrics in self.phase_metrics.values())

    def get_performance_summary(self) -> Dict[str, Any]:
        """Get comprehensive performance summary."""
        summary = {
            "total_elapsed_time": self.get_total_elapsed_time(),
            "peak_memory_mb": self.get_peak_memory(),
            "memory_limit_mb": self.memory_limit_mb,
            "phases": {}
        }

        for phase_name, metrics in self.phase_metrics.items():
            summary["phases"][phase_name] = {
                "elapsed_time": metrics.elapsed_time,
                "operations_count": metrics.operations_count,
                "operations_per_second": metrics.operations_per_second,
                "peak_memory_mb": metrics.peak_memory_mb
            }

        return summary

    def log_performance_report(self) -> None:
        """Log comprehensive performance report."""
        summary = self.get_performance_summary()

        logging.info("=" * 50)
        logging.info("PERFORMANCE REPORT")
        logging.info("=" * 50)
        logging.info(f"Total time: {summary['total_elapsed_time']:.2f} seconds")
        logging.info(f"Peak memory: {summary['peak_memory_mb']:.1f} MB")
        logging.info(f"Memory limit: {summary['memory_limit_mb']} MB")

        if summary['phases']:
            logging.info("Phase breakdown:")
            for phase_name, phase_data in summary['phases'].items():
                logging.info(f"  {phase_name}: {phase_data['elapsed_time']:.2f}s "
                             f"({phase_data['operations_count']} ops, "
                             f"{phase_data['operations_per_second']:.1f} ops/s, "
                             f"{phase_data['peak_memory_mb']:.1f}MB)")


class ProgressCounter:
    """Record counter written by the main loop and read by the reporter."""

    def __init__(self):
        self.value = 0

    def increment(self) -> int:
        self.value += 1
        return self.value


class ThroughputReporter:
    """Background thread logging processed reads and reads/second at a fixed cadence.

    The thread waits on a stop event rather than sleeping, so stop() returns
    as soon as the thread has logged its last line, independent of the
    reporting interval.
    """

    def __init__(self, counter: ProgressCounter, interval: float = 180.0,
                 clock: Callable[[], float] = time.monotonic,
                 emit: Optional[Callable[[str], None]] = None):
        if interval <= 0:
            raise ValueError("Reporting interval must be > 0")
        self.counter = counter
        self.interval = interval
        self.clock = clock
        self.emit = emit or logging.info
        self.reports = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started_at = 0.0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._started_at = self.clock()
        self._thread = threading.Thread(target=self._run, name="throughput-reporter", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal the reporter and wait until it has finished."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def report(self) -> str:
        processed = self.counter.value
        elapsed = self.clock() - self._started_at
        rate = processed / elapsed / 1000 if elapsed > 0 else 0.0
        message = f"{processed:,} reads processed, {rate:.2f}k reads/sec"
        self.reports += 1
        self.emit(message)
        return message

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.report()
        self.report()

    def __enter__(self) -> 'ThroughputReporter':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
