#!/usr/bin/env python3

"""
Transcript Mapping Pipeline

Assigns aligned sequencing reads to the genes they originate from using a
GFF3 (ENSEMBL, GENCODE, RefSeq) or BED exon annotation, and tags every
alignment record with the mapping result, gene id, cell barcode and UMI.

Modules:
- core: Data structures, annotation parsing, read classification,
  exceptions, configuration and the streaming pipeline
- utils: Performance monitoring and throughput reporting
- tests: Unit test suite
"""

__version__ = "1.0.0"
__author__ = "Transcript Mapping Pipeline Team"

# Import main components for easy access
from .core.data_structures import Interval, Gene, AnnotationIndex
from .core.exceptions import (
    PipelineError, ParseError, FormatError, ConsistencyError,
    PipelineIOError, ConfigurationError, MemoryError
)
from .core.config import PipelineConfig, load_config
from .core.parsers import AnnotationLoader, Dialect, load_annotation, normalize_chr_name
from .core.processors import MappingCode, MappingResult, ReadClassifier, ReadNameLayout, classify_read
from .core.pipeline import TranscriptMappingPipeline, MappingStatistics

__all__ = [
    # Main pipeline
    'TranscriptMappingPipeline', 'MappingStatistics',
    # Data structures
    'Interval', 'Gene', 'AnnotationIndex',
    # Annotation loading
    'AnnotationLoader', 'Dialect', 'load_annotation', 'normalize_chr_name',
    # Classification
    'MappingCode', 'MappingResult', 'ReadClassifier', 'ReadNameLayout', 'classify_read',
    # Exceptions
    'PipelineError', 'ParseError', 'FormatError', 'ConsistencyError',
    'PipelineIOError', 'ConfigurationError', 'MemoryError',
    # Configuration
    'PipelineConfig', 'load_config'
]
