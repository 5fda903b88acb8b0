#!/usr/bin/env python3

"""
Core module for the transcript mapping pipeline.

Contains fundamental data structures, annotation parsing, read
classification, exception types, and configuration management components.
"""

from .data_structures import Interval, Gene, AnnotationIndex
from .exceptions import (
    PipelineError, ParseError, FormatError, ConsistencyError,
    PipelineIOError, ConfigurationError, MemoryError
)
from .config import PipelineConfig, load_config
from .parsers import AnnotationLoader, Dialect, load_annotation, normalize_chr_name
from .processors import MappingCode, MappingResult, ReadClassifier, ReadNameLayout, classify_read

__all__ = [
    'Interval', 'Gene', 'AnnotationIndex',
    'PipelineError', 'ParseError', 'FormatError', 'ConsistencyError',
    'PipelineIOError', 'ConfigurationError', 'MemoryError',
    'PipelineConfig', 'load_config',
    'AnnotationLoader', 'Dialect', 'load_annotation', 'normalize_chr_name',
    'MappingCode', 'MappingResult', 'ReadClassifier', 'ReadNameLayout', 'classify_read'
]
