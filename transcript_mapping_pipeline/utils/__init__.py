#!/usr/bin/env python3

"""
Utility module for the transcript mapping pipeline.
"""

from .performance_monitor import PerformanceMonitor, ProgressCounter, ThroughputReporter

__all__ = ['PerformanceMonitor', 'ProgressCounter', 'ThroughputReporter']
