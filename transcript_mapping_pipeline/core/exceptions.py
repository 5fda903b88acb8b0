#!/usr/bin/env python3

"""
Custom exceptions for the transcript mapping pipeline.

Provides specific exception types for better error handling and debugging.
"""

class PipelineError(Exception):
    """Base exception for all pipeline-related errors."""
    pass


class ParseError(PipelineError):
    """Error occurred during file parsing."""

    def __init__(self, message: str, filename: str = "", line_number: int = 0):
        super().__init__(message)
        self.filename = filename
        self.line_number = line_number

    def __str__(self):
        if self.filename and self.line_number:
            return f"Parse error in {self.filename} at line {self.line_number}: {super().__str__()}"
        elif self.filename:
            return f"Parse error in {self.filename}: {super().__str__()}"
        return super().__str__()


class FormatError(ParseError):
    """Annotation dialect not recognised or hierarchy reference unresolved."""

    def __init__(self, message: str, filename: str = "", line_number: int = 0, line: str = ""):
        super().__init__(message, filename, line_number)
        self.line = line

    def __str__(self):
        if self.line:
            return f"{super().__str__()}\n{self.line}"
        return super().__str__()


class ConsistencyError(PipelineError):
    """Annotation and alignment input do not describe the same genome."""
    pass


class PipelineIOError(PipelineError):
    """Missing input file or failed write of an output record."""

    def __init__(self, message: str, record_name: str = ""):
        super().__init__(message)
        self.record_name = record_name

    def __str__(self):
        if self.record_name:
            return f"I/O error for read {self.record_name}: {super().__str__()}"
        return super().__str__()


class ConfigurationError(PipelineError):
    """Error in pipeline configuration."""
    pass


class MemoryError(PipelineError):
    """Memory usage exceeded limits."""

    def __init__(self, message: str, current_usage: float, limit: float):
        super().__init__(message)
        self.current_usage = current_usage
        self.limit = limit

    def __str__(self):
        return f"Memory error: {super().__str__()} (current: {self.current_usage:.1f}MB, limit: {self.limit:.1f}MB)"
